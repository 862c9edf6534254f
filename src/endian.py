# author: Quickboot tools maintainers

import numpy as np

from errors import AlignmentError


# BPI flash in x16 mode presents every 16-bit flash word to the configuration
# logic with D[0] as the most significant bit of the first byte. The image is
# therefore stored with the bits of each byte reversed and the two bytes of
# every 16-bit word swapped.
#
# The buffer is modified in place. Applying the transform twice restores the
# original contents.
def bit_reverse_words(
  byte_bitstream: np.ndarray
) -> None:
  assert byte_bitstream.itemsize == 1, f"Error: Expected 8-bit view of bitstream."
  if byte_bitstream.size % 2 != 0:
    raise AlignmentError(f"Cannot bit-reverse 16-bit words of an odd-length buffer ({byte_bitstream.size} bytes)")

  # Unpacking LSB-first and repacking MSB-first reverses the bits of every byte.
  reversed_bytes = np.packbits(np.unpackbits(byte_bitstream, bitorder="little"), bitorder="big")

  # Swap the 2 bytes of every 16-bit word.
  byte_pairs = reversed_bytes.reshape(-1, 2)
  byte_bitstream[:] = byte_pairs[:, ::-1].reshape(-1)
