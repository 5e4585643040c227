"""Helpers for flat, row-major tile pixel buffers"""

import numpy


def all_equals(buffer: numpy.ndarray, value) -> bool:
    """Return True if every value in buffer equals value"""
    return bool(numpy.all(buffer == value))


def set_all(buffer: numpy.ndarray, value) -> None:
    """Set every value in buffer to value, in place"""
    buffer.fill(value)


def shift(
    buffer: numpy.ndarray,
    size: tuple[int, int],
    target_size: tuple[int, int],
    offset: tuple[int, int],
    fill,
) -> None:
    """Move a block stored at the start of buffer to its offset in a larger grid

    The first width * height values of buffer hold a (width, height) block in
    row-major order. They are moved so the block starts at column/row offset
    of a grid with target_size (width, height), and every cell the block
    vacated is set to fill. Buffer is modified in place.
    """
    width, height = size
    target_width, target_height = target_size
    x_offset, y_offset = offset

    if x_offset + width > target_width or y_offset + height > target_height:
        raise ValueError(
            f"block {width}x{height} at {x_offset},{y_offset} does not fit "
            f"within {target_width}x{target_height}"
        )

    if (x_offset, y_offset) == (0, 0) and width == target_width:
        return

    # Walk destination cells from the end so a source cell is always read
    # before it can be overwritten
    for row in range(height - 1, -1, -1):
        src_start = row * width
        dst_start = (row + y_offset) * target_width + x_offset
        if dst_start == src_start:
            continue
        buffer[dst_start : dst_start + width] = buffer[src_start : src_start + width]

        # Clear source cells not covered by the block's new position
        src_stop = src_start + width
        lo, hi = src_start, src_stop
        if dst_start < src_stop and dst_start + width > src_start:
            # Overlapping rows: only the uncovered part of the source run
            if dst_start > src_start:
                hi = dst_start
            else:
                lo = dst_start + width
        buffer[lo:hi] = fill
