# author: Quickboot tools maintainers

import numpy as np

import bitstream_spec as bit_spec
import helpers
import packet as pkt
import packet_spec as pkt_spec
import quickboot_spec as qb_spec
from errors import AlignmentError, CapacityError

# Generates the WBSTAR value that makes IPROG jump to `multiboot_byte_address`.
#
# - BPI16: RS[0] (and RS_TS_B) replace the byte address bit 24, and the rest of
#   the address is given in 16-bit flash words.
# - SPI with `wbstar_shift` = 0: the byte address is used as-is.
# - SPI with `wbstar_shift` > 0: the address is given in 2^shift-byte units
#   (the 32-bit addressing mode selected through BSPI). The result must not
#   overflow into the RS[1:0] and RS_TS_B bits.
def wbstar_from_multiboot_address(
  multiboot_byte_address: int,
  bus_profile: qb_spec.BusProfile,
  wbstar_shift: int = 0
) -> int:
  if bus_profile == qb_spec.BusProfile.BPI16:
    wbstar = 0
    if multiboot_byte_address & qb_spec.MULTIBOOT_RS_BYTE_ADDR_MASK:
      wbstar |= qb_spec.WBSTAR_RS_MASK | qb_spec.WBSTAR_RS_TS_B_MASK
    wbstar |= (multiboot_byte_address & qb_spec.MULTIBOOT_LOW_ADDR_MASK) // 2
    return wbstar

  wbstar = multiboot_byte_address >> wbstar_shift
  if (wbstar_shift > 0) and (wbstar & qb_spec.WBSTAR_RS_FIELD_MASK):
    raise CapacityError(f"Multiboot address 0x{multiboot_byte_address:0>8x} overflows the WBSTAR start address field (0x{wbstar:0>8x})")
  if wbstar > bit_spec.DUMMY_WORD:
    raise CapacityError(f"Multiboot address 0x{multiboot_byte_address:0>8x} does not fit in WBSTAR")
  return wbstar

# Recovers the multiboot byte address from a raw WBSTAR value (as found in a
# gold bitstream).
#
# For BPI16 the RS[0] bit maps to byte address bit 23 and the 22-bit start
# address is doubled (16-bit words to bytes). This is not the inverse of
# wbstar_from_multiboot_address() and is kept exactly as the boards were
# programmed with it. For SPI only the low 24 address bits are meaningful.
def multiboot_address_from_wbstar(
  wbstar: int,
  bus_profile: qb_spec.BusProfile
) -> int:
  if bus_profile == qb_spec.BusProfile.BPI16:
    multiboot_byte_address = 0
    if wbstar & qb_spec.WBSTAR_RS_MASK:
      multiboot_byte_address |= qb_spec.WBSTAR_RS_BYTE_ADDR
    multiboot_byte_address |= 2 * (wbstar & qb_spec.WBSTAR_BPI16_START_ADDR_MASK)
    return multiboot_byte_address

  return wbstar & qb_spec.MULTIBOOT_LOW_ADDR_MASK

# Words that precede the quickboot commands. BPI16 devices need to see the bus
# width detect pattern and their own sync word, since the critical switch word
# (00 00 00 bb) only doubles as the first half of the bus width detect.
def _profile_prologue_words(
  bus_profile: qb_spec.BusProfile
) -> list[int]:
  if bus_profile == qb_spec.BusProfile.BPI16:
    return [
      bit_spec.BUS_WIDTH_DETECT_WORD,
      bit_spec.DUMMY_WORD,
      bit_spec.DUMMY_WORD,
      bit_spec.SYNC_WORD,
    ]
  return list()

# Returns the quickboot command program (without the trailing NOOP padding).
def header_words(
  multiboot_byte_address: int,
  bus_profile: qb_spec.BusProfile,
  extra_registers: tuple[tuple[pkt_spec.Register, int], ...] = (),
  wbstar: int | None = None,
  wbstar_shift: int = 0
) -> list[int]:
  if wbstar is None:
    wbstar = wbstar_from_multiboot_address(multiboot_byte_address, bus_profile, wbstar_shift)

  words = _profile_prologue_words(bus_profile)
  words.append(pkt.noop_word())

  for (reg_addr, value) in extra_registers:
    words.extend(pkt.reg_write_words(reg_addr, [value]))
    # Give every command a cycle to take effect.
    if reg_addr == pkt_spec.Register.CMD:
      words.append(pkt.noop_word())

  words.extend(pkt.reg_write_words(pkt_spec.Register.WBSTAR, [wbstar]))
  words.extend(pkt.cmd_write_words(pkt_spec.Command.IPROG))
  return words

# Writes a quickboot header into `dest`.
#
# Args:
# - dest: np.ndarray
#     Byte view of the start of a design slot, sized sector_size + quickboot_space.
# - sector_size: int
#     Flash sector size. The critical switch word occupies the last 4 bytes of
#     the first sector and the command block starts at the second sector.
# - multiboot_byte_address: int
#     Absolute flash address of the silver image.
# - bus_profile: qb_spec.BusProfile
#     Selects the critical switch word, the prologue and the WBSTAR encoding.
# - enable_silver: bool
#     If False the critical switch word is left erased (0xff) so the device
#     boots the gold image.
# - extra_registers: tuple[tuple[pkt_spec.Register, int], ...]
#     Register writes emitted before WBSTAR and IPROG (multi-design layout).
# - wbstar: int | None
#     Raw WBSTAR value to use instead of the one computed from the address.
# - wbstar_shift: int
#     Address granularity of WBSTAR (see wbstar_from_multiboot_address()).
# - quickboot_space: int
#     Bytes reserved for the command block. The unused part is padded with NOOPs.
def build_header(
  dest: np.ndarray,
  sector_size: int,
  multiboot_byte_address: int,
  bus_profile: qb_spec.BusProfile,
  enable_silver: bool,
  extra_registers: tuple[tuple[pkt_spec.Register, int], ...] = (),
  wbstar: int | None = None,
  wbstar_shift: int = 0,
  quickboot_space: int = qb_spec.QUICKBOOT_SPACE
) -> None:
  assert dest.itemsize == 1, f"Error: Expected 8-bit view of flash image."
  assert dest.size == sector_size + quickboot_space, f"Error: Expected header region of {sector_size + quickboot_space} bytes, but received {dest.size}."
  if (sector_size % bit_spec.WORD_SIZE_BYTES != 0) or (quickboot_space % bit_spec.WORD_SIZE_BYTES != 0):
    raise AlignmentError(f"Sector size ({sector_size}) and quickboot space ({quickboot_space}) must be multiples of {bit_spec.WORD_SIZE_BYTES} bytes")

  words = header_words(multiboot_byte_address, bus_profile, extra_registers, wbstar, wbstar_shift)
  num_words_available = quickboot_space // bit_spec.WORD_SIZE_BYTES
  if len(words) > num_words_available:
    raise CapacityError(f"Quickboot header needs {len(words) * bit_spec.WORD_SIZE_BYTES} bytes, but only {quickboot_space} are reserved")
  words.extend([pkt.noop_word()] * (num_words_available - len(words)))

  switch_ofst = sector_size - bit_spec.WORD_SIZE_BYTES
  dest[:switch_ofst] = bit_spec.ERASED_BYTE
  if enable_silver:
    dest[switch_ofst:sector_size] = helpers.magic_to_array(qb_spec.CRITICAL_SWITCH_WORD[bus_profile])
  else:
    # Erased flash never forms the switch word, so the device falls back to gold.
    dest[switch_ofst:sector_size] = bit_spec.ERASED_BYTE

  dest[sector_size:] = helpers.words_to_bytes(words)
