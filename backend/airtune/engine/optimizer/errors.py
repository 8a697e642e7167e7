class OptimizerError(RuntimeError):
    pass


class AirframeSetupError(OptimizerError):
    pass


class NoOptimizedResultError(OptimizerError):
    pass


class InvalidBoundsError(ValueError):
    pass


class InvalidConfigError(ValueError):
    pass
