# author: Quickboot tools maintainers

import numpy as np

import bitstream_spec as bit_spec
import gold_image
import image_compat
import mcs
import packet_spec as pkt_spec
import quickboot_header as qb_header
import quickboot_spec as qb_spec
from bitstream import pad_leading_ff
from endian import bit_reverse_words
from errors import AlignmentError, CapacityError, LayoutError


# One gold/silver pair to place in a design slot. If no gold image is given, it
# is derived from the silver image.
class Design:
  def __init__(
    self,
    silver: np.ndarray,
    slot: int = 0,
    gold: np.ndarray | None = None,
    name: str | None = None
  ) -> None:
    assert silver.itemsize == 1, f"Error: Expected 8-bit view of silver bitstream."
    assert (gold is None) or (gold.itemsize == 1), f"Error: Expected 8-bit view of gold bitstream."
    self.silver = silver
    self.slot = slot
    self.gold = gold
    self.name = name if name is not None else f"slot {slot}"

# All the settings needed to assemble a flash image.
class FlashLayout:
  def __init__(
    self,
    bus_profile: qb_spec.BusProfile,
    sector_size: int,
    multiboot_offset: int,
    gold_offset: int,
    quickboot_space: int,
    design_offset: int | None = None,
    enable_silver: bool = True,
    wbstar: int | None = None,
    wbstar_shift: int = 0,
    header_writes: gold_image.RegisterWrites = (),
    gold_writes: gold_image.RegisterWrites = (),
    silver_writes: gold_image.RegisterWrites = (),
    silver_pad_ff: int = 0
  ) -> None:
    # - design_offset
    #     Size of a design slot. None means the flash holds a single design whose
    #     silver image may extend to the end of the image.
    # - wbstar
    #     Raw WBSTAR value for the quickboot header (None computes it from the
    #     multiboot address).
    self.bus_profile = bus_profile
    self.sector_size = sector_size
    self.multiboot_offset = multiboot_offset
    self.gold_offset = gold_offset
    self.quickboot_space = quickboot_space
    self.design_offset = design_offset
    self.enable_silver = enable_silver
    self.wbstar = wbstar
    self.wbstar_shift = wbstar_shift
    self.header_writes = header_writes
    self.gold_writes = gold_writes
    self.silver_writes = silver_writes
    self.silver_pad_ff = silver_pad_ff

  def max_slots(self) -> int:
    return 1 if self.design_offset is None else qb_spec.MULTI_DESIGN_MAX_SLOTS

  def slot_base(
    self,
    slot: int
  ) -> int:
    return 0 if self.design_offset is None else slot * self.design_offset

  def validate(self) -> None:
    if self.sector_size <= 0 or self.sector_size % bit_spec.WORD_SIZE_BYTES != 0:
      raise AlignmentError(f"Flash sector size {self.sector_size} is not a positive multiple of {bit_spec.WORD_SIZE_BYTES} bytes")
    if self.multiboot_offset % self.sector_size != 0:
      raise AlignmentError(f"MULTIBOOT address 0x{self.multiboot_offset:0>8x} is not on a flash sector boundary (sector size is {self.sector_size} bytes)")
    if (self.design_offset is not None) and (self.design_offset % self.sector_size != 0):
      raise AlignmentError(f"Design slot size 0x{self.design_offset:0>8x} is not on a flash sector boundary (sector size is {self.sector_size} bytes)")
    if self.gold_offset < self.sector_size + self.quickboot_space:
      raise LayoutError(f"Gold image at 0x{self.gold_offset:0>8x} overlaps the quickboot header (ends at 0x{self.sector_size + self.quickboot_space:0>8x})")

  # Gold and silver given separately, with a quickboot header in the first 2
  # sectors (XAPP1081). The gold image immediately follows the header.
  @staticmethod
  def single_design(
    bus_profile: qb_spec.BusProfile,
    multiboot_offset: int,
    sector_size: int | None = None,
    enable_silver: bool = True,
    wbstar: int | None = None
  ):
    if sector_size is None:
      sector_size = qb_spec.DEFAULT_SECTOR_SIZE[bus_profile]
    return FlashLayout(
      bus_profile=bus_profile,
      sector_size=sector_size,
      multiboot_offset=multiboot_offset,
      gold_offset=sector_size + qb_spec.QUICKBOOT_SPACE,
      quickboot_space=qb_spec.QUICKBOOT_SPACE,
      enable_silver=enable_silver,
      wbstar=wbstar,
      gold_writes=gold_image.gold_register_writes(bus_profile)
    )

  # Up to 4 designs in SPI flash, each with its own gold, silver and quickboot
  # header. Gold images are derived from the silver images.
  @staticmethod
  def multi_design(
    enable_silver: bool = True,
    silver_pad_ff: int = qb_spec.MULTI_DESIGN_SILVER_PAD_FF
  ):
    sector_size = qb_spec.MULTI_DESIGN_SECTOR_SIZE
    return FlashLayout(
      bus_profile=qb_spec.BusProfile.SPI,
      sector_size=sector_size,
      multiboot_offset=qb_spec.MULTI_DESIGN_MULTIBOOT_OFFSET,
      gold_offset=2 * sector_size,
      quickboot_space=sector_size,
      design_offset=qb_spec.MULTI_DESIGN_SLOT_SIZE,
      enable_silver=enable_silver,
      wbstar_shift=qb_spec.MULTI_DESIGN_WBSTAR_SHIFT,
      header_writes=qb_spec.MULTI_DESIGN_HEADER_WRITES,
      gold_writes=gold_image.gold_register_writes(qb_spec.BusProfile.SPI, qb_spec.MULTI_DESIGN_BSPI_MODE),
      silver_writes=((pkt_spec.Register.BSPI, qb_spec.MULTI_DESIGN_BSPI_MODE),),
      silver_pad_ff=silver_pad_ff
    )

# What was written in a design slot. Used for reporting.
class SlotReport:
  def __init__(
    self,
    name: str,
    slot: int,
    slot_base: int,
    gold_address: int,
    gold_size: int,
    silver_address: int,
    silver_size: int,
    critical_switch_address: int,
    wbstar: int,
    gold_prev_values: dict[pkt_spec.Register, int],
    silver_prev_values: dict[pkt_spec.Register, int],
    num_crcs_disabled: int
  ) -> None:
    self.name = name
    self.slot = slot
    self.slot_base = slot_base
    self.gold_address = gold_address
    self.gold_size = gold_size
    self.silver_address = silver_address
    self.silver_size = silver_size
    self.critical_switch_address = critical_switch_address
    self.wbstar = wbstar
    self.gold_prev_values = gold_prev_values
    self.silver_prev_values = silver_prev_values
    self.num_crcs_disabled = num_crcs_disabled

class FlashImage:
  def __init__(
    self,
    data: np.ndarray,
    start_address: int,
    slots: list[SlotReport]
  ) -> None:
    # - data
    #     Full flash contents from address 0. Unused space is 0xff.
    # - start_address
    #     First address worth programming (the base of the first used slot).
    self.data = data
    self.start_address = start_address
    self.slots = slots

  def size_bytes(self) -> int:
    return self.data.size

  def to_mcs_lines(self) -> list[str]:
    return mcs.encode_mcs(self.data, self.start_address)

def _check_slots(
  designs: list[Design],
  layout: FlashLayout
) -> list[int]:
  if len(designs) == 0:
    raise LayoutError("No designs specified")

  slots = sorted(design.slot for design in designs)
  if len(set(slots)) != len(slots):
    raise LayoutError(f"Multiple designs assigned to the same slot ({slots})")
  if (slots[0] < 0) or (slots[-1] >= layout.max_slots()):
    raise LayoutError(f"Design slots {slots} out of range (layout holds {layout.max_slots()} slot(s))")
  if slots[-1] - slots[0] + 1 != len(slots):
    raise LayoutError(f"Supplied designs are not contiguous ({slots})")
  return slots

# Prepares the gold and silver images of a design, following the layout's
# register overrides.
def _prepare_design(
  design: Design,
  layout: FlashLayout
) -> tuple[np.ndarray, np.ndarray, dict[pkt_spec.Register, int], dict[pkt_spec.Register, int], int]:
  image_compat.check_basic_image_compatibility(design.silver)

  if design.gold is None:
    (gold, gold_prev_values, num_crcs_disabled) = gold_image.derive_gold_image(design.silver, layout.gold_writes)
  else:
    image_compat.check_basic_image_compatibility(design.gold)
    gold = design.gold
    gold_prev_values = dict()
    num_crcs_disabled = 0

  silver = design.silver.copy()
  silver_prev_values = gold_image.apply_register_writes(silver, layout.silver_writes)
  if layout.silver_pad_ff > 0:
    silver = pad_leading_ff(silver, layout.silver_pad_ff)

  return (gold, silver, gold_prev_values, silver_prev_values, num_crcs_disabled)

# Assembles gold/silver pairs and their quickboot headers into a flash image.
#
# Args:
# - designs: list[Design]
#     Designs to place. Their slots must be contiguous.
# - layout: FlashLayout
#     Assembly settings.
#
# Returns:
# - image: FlashImage
#
# Raises one of the QuickbootError subclasses if any design cannot be placed. No
# partial image is returned.
def assemble(
  designs: list[Design],
  layout: FlashLayout
) -> FlashImage:
  layout.validate()
  slots = _check_slots(designs, layout)

  prepared = list()
  for design in sorted(designs, key=lambda d: d.slot):
    (gold, silver, gold_prev_values, silver_prev_values, num_crcs_disabled) = _prepare_design(design, layout)

    if layout.gold_offset + gold.size > layout.multiboot_offset:
      raise CapacityError(
        f"Gold image of {design.name} ({gold.size} bytes) does not fit in the gold region "
        f"({layout.multiboot_offset - layout.gold_offset} bytes between 0x{layout.gold_offset:0>8x} and MULTIBOOT address 0x{layout.multiboot_offset:0>8x})"
      )
    if (layout.design_offset is not None) and (layout.multiboot_offset + silver.size > layout.design_offset):
      raise CapacityError(
        f"Silver image of {design.name} ({silver.size} bytes) does not fit in the silver region "
        f"({layout.design_offset - layout.multiboot_offset} bytes)"
      )

    prepared.append((design, gold, silver, gold_prev_values, silver_prev_values, num_crcs_disabled))

  # Make an image that holds the designs.
  if layout.design_offset is None:
    (_, _, silver, _, _, _) = prepared[0]
    image_size = layout.multiboot_offset + silver.size
  else:
    image_size = (slots[-1] + 1) * layout.design_offset
  # The BPI16 transform works on 16-bit words.
  if layout.bus_profile == qb_spec.BusProfile.BPI16:
    image_size += image_size % 2
  data = np.full(image_size, bit_spec.ERASED_BYTE, dtype=np.uint8)

  reports: list[SlotReport] = list()
  for (design, gold, silver, gold_prev_values, silver_prev_values, num_crcs_disabled) in prepared:
    slot_base = layout.slot_base(design.slot)
    gold_address = slot_base + layout.gold_offset
    silver_address = slot_base + layout.multiboot_offset

    data[gold_address : gold_address + gold.size] = gold
    data[silver_address : silver_address + silver.size] = silver

    header_end = slot_base + layout.sector_size + layout.quickboot_space
    qb_header.build_header(
      data[slot_base : header_end],
      layout.sector_size,
      silver_address,
      layout.bus_profile,
      layout.enable_silver,
      extra_registers=layout.header_writes,
      wbstar=layout.wbstar,
      wbstar_shift=layout.wbstar_shift,
      quickboot_space=layout.quickboot_space
    )
    wbstar = layout.wbstar
    if wbstar is None:
      wbstar = qb_header.wbstar_from_multiboot_address(silver_address, layout.bus_profile, layout.wbstar_shift)

    reports.append(SlotReport(
      name=design.name,
      slot=design.slot,
      slot_base=slot_base,
      gold_address=gold_address,
      gold_size=gold.size,
      silver_address=silver_address,
      silver_size=silver.size,
      critical_switch_address=slot_base + layout.sector_size - bit_spec.WORD_SIZE_BYTES,
      wbstar=wbstar,
      gold_prev_values=gold_prev_values,
      silver_prev_values=silver_prev_values,
      num_crcs_disabled=num_crcs_disabled
    ))

  if layout.bus_profile == qb_spec.BusProfile.BPI16:
    bit_reverse_words(data)

  return FlashImage(data, layout.slot_base(slots[0]), reports)
