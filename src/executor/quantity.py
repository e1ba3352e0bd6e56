"""Kubernetes resource quantity formatting."""

BYTES_PER_MEBIBYTE = 1024 * 1024


def format_cpu(millicores: int) -> str:
    """Render millicores as a CPU quantity, e.g. ``250m``.

    Values are not validated; negative input passes through.
    """
    return f"{millicores}m"


def format_memory(num_bytes: int) -> str:
    """Render bytes as a whole number of mebibytes, e.g. ``256Mi``.

    Rounds half away from zero, so 0.5Mi becomes 1Mi and -0.5Mi becomes -1Mi.
    Python's ``round`` rounds half to even and is not used here.
    """
    mebibytes, remainder = divmod(abs(num_bytes), BYTES_PER_MEBIBYTE)
    if remainder * 2 >= BYTES_PER_MEBIBYTE:
        mebibytes += 1
    if num_bytes < 0:
        mebibytes = -mebibytes
    return f"{mebibytes}Mi"
