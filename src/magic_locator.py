# author: Quickboot tools maintainers

import numpy as np

import helpers


# Finds the first offset at which `magic` appears in a bitstream, testing the
# candidate offsets
#
#   start, start + step, start + 2*step, ...
#
# up to (but excluding) `stop`. A negative step scans backwards. Candidates
# that are negative or too close to the end of the buffer to hold the whole
# magic sequence are silently dropped.
#
# Args:
# - byte_bitstream: np.ndarray
#     Byte-level view of a bitstream.
# - magic: bytes
#     Byte sequence to look for.
# - start, stop, step: int
#     Candidate offsets, with the same meaning as in range().
#
# Returns:
# - ofst: int | None
#     Offset of the first candidate (in scan order) that holds the magic
#     sequence, or None if no candidate matches.
def find_magic(
  byte_bitstream: np.ndarray,
  magic: bytes,
  start: int,
  stop: int,
  step: int = 1
) -> int | None:
  assert byte_bitstream.itemsize == 1, f"Error: Expected 8-bit view of bitstream."
  assert step != 0, f"Error: Step must be non-zero."

  magic_view = helpers.magic_to_array(magic)
  if byte_bitstream.size < magic_view.size:
    return None

  candidates = np.arange(start, stop, step)
  in_bounds = (0 <= candidates) & (candidates + magic_view.size <= byte_bitstream.size)
  candidates = candidates[in_bounds]
  if candidates.size == 0:
    return None

  # Magic sequences need not be word-aligned, so we look through a sliding
  # window of the magic's size and only compare the windows that start at a
  # candidate offset.
  byte_sliding_window = np.lib.stride_tricks.sliding_window_view(byte_bitstream, magic_view.size)
  hits = np.flatnonzero(np.all(byte_sliding_window[candidates] == magic_view, axis=-1))
  if hits.size == 0:
    return None

  return int(candidates[hits[0]])

# Returns the byte offsets of all occurrences of `magic` in the bitstream.
def find_all_magic(
  byte_bitstream: np.ndarray,
  magic: bytes
) -> list[int]:
  assert byte_bitstream.itemsize == 1, f"Error: Expected 8-bit view of bitstream."

  magic_view = helpers.magic_to_array(magic)
  if byte_bitstream.size < magic_view.size:
    return list()

  byte_sliding_window = np.lib.stride_tricks.sliding_window_view(byte_bitstream, magic_view.size)
  # The sliding window is a 2D ndarray, so we call flatten() to have a 1D result.
  ofsts = np.argwhere(
    np.all(byte_sliding_window == magic_view, axis=-1)
  ).flatten()

  return ofsts.tolist()
