# author: Quickboot tools maintainers

import numpy as np

import bitstream_spec as bit_spec
import packet_spec as pkt_spec
import quickboot_header as qb_header
import quickboot_spec as qb_spec
import register_patch as reg_patch
from errors import IncompatibleImageError
from magic_locator import find_magic


# Checks that a bitstream can be placed in a quickboot image. It must have a
# SYNC WORD near the start, and it must not contain an IPROG command in its
# command prologue (the quickboot header issues the IPROG, and a gold image that
# jumps by itself would defeat the fallback).
#
# Raises SyncNotFoundError or IncompatibleImageError.
def check_basic_image_compatibility(
  byte_bitstream: np.ndarray
) -> None:
  sync_end_ofst = reg_patch.find_sync_end(byte_bitstream)

  iprog_ofst = find_magic(byte_bitstream, qb_spec.IPROG_MAGIC, sync_end_ofst, bit_spec.SYNC_SEARCH_WINDOW_BYTES)
  if iprog_ofst is not None:
    raise IncompatibleImageError(f"Found IPROG command in bit stream at byte ofst 0x{iprog_ofst:0>8x}")

# A silver image must pass the basic checks and carry the "SILV" marker in AXSS.
def check_silver_image_compatible(
  byte_bitstream: np.ndarray
) -> None:
  check_basic_image_compatibility(byte_bitstream)

  axss = reg_patch.extract_register_write(byte_bitstream, pkt_spec.Register.AXSS)
  if axss != qb_spec.AXSS_SILVER:
    raise IncompatibleImageError(f"Found AXSS = 0x{axss:0>8x} (expected 0x{qb_spec.AXSS_SILVER:0>8x})")

# Extracts the multiboot address from the WBSTAR write of a bitstream.
#
# Returns:
# - (multiboot_byte_address, wbstar): tuple[int, int]
#     The multiboot byte address implied by WBSTAR and the raw WBSTAR value.
#     Both are 0 if the bitstream does not write WBSTAR.
def extract_multiboot_address(
  byte_bitstream: np.ndarray,
  bus_profile: qb_spec.BusProfile
) -> tuple[int, int]:
  wbstar = reg_patch.find_register_write(byte_bitstream, pkt_spec.Register.WBSTAR)
  if wbstar is None:
    return (0, 0)
  return (qb_header.multiboot_address_from_wbstar(wbstar, bus_profile), wbstar)
