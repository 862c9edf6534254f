# author: Quickboot tools maintainers

import numpy as np

import packet_spec as pkt_spec
import quickboot_spec as qb_spec
import register_patch as reg_patch
import stream_crc

RegisterWrites = tuple[tuple[pkt_spec.Register, int], ...]

# Registers written in a gold image derived from a silver image, per profile.
def gold_register_writes(
  bus_profile: qb_spec.BusProfile,
  bspi_mode: int | None = None
) -> RegisterWrites:
  writes: list[tuple[pkt_spec.Register, int]] = [(pkt_spec.Register.AXSS, qb_spec.AXSS_GOLD)]
  if bspi_mode is not None:
    writes.append((pkt_spec.Register.BSPI, bspi_mode))
  if bus_profile == qb_spec.BusProfile.BPI16:
    writes.append((pkt_spec.Register.COR0, qb_spec.BPI16_GOLD_COR0))
    writes.append((pkt_spec.Register.COR1, qb_spec.BPI16_GOLD_COR1))
  return tuple(writes)

# Patches every register of `writes` in place.
#
# Returns the previous values of the registers, in the same order as `writes`.
# A previous value of 0 means the register was not written (see
# reg_patch.replace_register_write()).
def apply_register_writes(
  byte_bitstream: np.ndarray,
  writes: RegisterWrites
) -> dict[pkt_spec.Register, int]:
  prev_values: dict[pkt_spec.Register, int] = dict()
  for (reg_addr, value) in writes:
    prev_values[reg_addr] = reg_patch.replace_register_write(byte_bitstream, reg_addr, value)
  return prev_values

# Makes a gold image out of a silver image.
#
# The silver image is not modified. The gold copy gets the register writes of
# `writes` (the AXSS "GOLD" marker and profile-specific settings) and every CRC
# check in its tail is replaced by a CRC reset, since the patched registers
# invalidate the original CRC.
#
# Returns:
# - (gold, prev_values, num_crcs_disabled): tuple[np.ndarray, dict[pkt_spec.Register, int], int]
def derive_gold_image(
  silver: np.ndarray,
  writes: RegisterWrites
) -> tuple[np.ndarray, dict[pkt_spec.Register, int], int]:
  gold = silver.copy()
  prev_values = apply_register_writes(gold, writes)
  num_crcs_disabled = stream_crc.disable_all_stream_crcs(gold)
  return (gold, prev_values, num_crcs_disabled)
