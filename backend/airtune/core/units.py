CM_PER_M = 100.0
M_PER_CM = 1.0 / CM_PER_M


def cm_to_m(value: float) -> float:
    return value * M_PER_CM


def m_to_cm(value: float) -> float:
    return value * CM_PER_M


def identity(value: float) -> float:
    return value
