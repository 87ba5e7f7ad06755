"""Block-range partitioning for bounded log queries."""

from collections.abc import Iterator


def iter_block_windows(start_block: int, end_block: int, window_size: int) -> Iterator[tuple[int, int]]:
    """Split ``[start_block, end_block]`` into consecutive inclusive windows.

    Windows end on multiples of ``window_size`` (or on ``end_block``), so
    ``to - from`` never exceeds ``window_size`` and windows never overlap.
    Scanning 0..2500 with a size of 1000 yields (0, 1000), (1001, 2000),
    (2001, 2500).

    Args:
        start_block: First block, inclusive
        end_block: Last block, inclusive
        window_size: Maximum span of a single window

    Yields:
        (from_block, to_block) pairs

    Raises:
        ValueError: If window_size < 1
    """
    if window_size < 1:
        raise ValueError(f"window_size must be >= 1, got {window_size}")

    from_block = start_block
    while from_block <= end_block:
        to_block = min((from_block // window_size + 1) * window_size, end_block)
        yield from_block, to_block
        from_block = to_block + 1
