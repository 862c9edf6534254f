# author: Quickboot tools maintainers

import argparse
from pathlib import Path

import helpers
import image_compat
import mcs
import quickboot_spec as qb_spec
from bitstream import Bitstream
from errors import LayoutError
from flash_image import Design, FlashLayout, assemble


# Assembles a gold and a silver bitstream into a single-design quickboot .mcs
# file (XAPP1081).
#
# The gold image is used as-is (see quickboot_gold.py to make one). If
# `multiboot_offset` is None, the silver image address is taken from the WBSTAR
# write of the gold image.
def quickboot_builder(
  gold_path: str | Path,
  silver_path: str | Path,
  out: str | Path,
  bus_profile: qb_spec.BusProfile,
  multiboot_offset: int | None,
  sector_size: int | None,
  enable_silver: bool
) -> None:
  print(f"Reading gold file {gold_path}")
  gold = Bitstream.from_file_path(gold_path).data
  image_compat.check_basic_image_compatibility(gold)

  print(f"Reading silver file {silver_path}")
  silver = Bitstream.from_file_path(silver_path).data

  (gold_multiboot_offset, gold_wbstar) = image_compat.extract_multiboot_address(gold, bus_profile)
  print(f"Extracted WBSTAR register value: {helpers.hex_word(gold_wbstar)}")
  print(f"Extracted multiboot byte address: {helpers.hex_word(gold_multiboot_offset)}")

  wbstar = None
  if multiboot_offset is None:
    if gold_multiboot_offset == 0:
      raise LayoutError("Unable to guess the MULTIBOOT address from the gold image. Please use --multiboot.")
    multiboot_offset = gold_multiboot_offset
    # BPI16 flashes keep the RS bits of the gold image. An address given on the
    # command line always generates a new WBSTAR value.
    if bus_profile == qb_spec.BusProfile.BPI16:
      wbstar = gold_wbstar

  layout = FlashLayout.single_design(bus_profile, multiboot_offset, sector_size, enable_silver, wbstar)
  print(f"MULTIBOOT address: {helpers.hex_word(layout.multiboot_offset)}")
  print(f"PROM sector size: {layout.sector_size} bytes")

  image = assemble([Design(silver, gold=gold)], layout)
  for slot in image.slots:
    print(f"Gold image: {slot.gold_size} bytes at {helpers.hex_word(slot.gold_address)}")
    print(f"Silver image: {slot.silver_size} bytes at {helpers.hex_word(slot.silver_address)}")
    print(f"WBSTAR: {helpers.hex_word(slot.wbstar)}")
  if not enable_silver:
    print("Critical switch word left erased, the device will boot the gold image")

  print(f"Writing {image.size_bytes()} bytes to {out}")
  mcs.write_mcs_file(out, image.to_mcs_lines())

# Main program (if executed as script)
if __name__ == "__main__":
  parser = argparse.ArgumentParser(description="Assembles gold and silver bitstreams into a quickboot .mcs flash image.")
  profile_group = parser.add_mutually_exclusive_group(required=True)
  profile_group.add_argument("--spi", action="store_const", dest="bus_profile", const=qb_spec.BusProfile.SPI, help="Target SPI flash.")
  profile_group.add_argument("--bpi16", action="store_const", dest="bus_profile", const=qb_spec.BusProfile.BPI16, help="Target 16-bit BPI flash.")
  parser.add_argument("--gold", type=str, required=True, help="Gold bitstream (.bit).")
  parser.add_argument("--silver", type=str, required=True, help="Silver bitstream (.bit).")
  parser.add_argument("--multiboot", type=lambda x: int(x, 0), help="Byte address of the silver image (default: from the WBSTAR write of the gold image).")
  parser.add_argument("--sector-size", type=lambda x: int(x, 0), help="Flash sector size in bytes (default: 4096 for SPI, 32768 for BPI16).")
  parser.add_argument("--disable-silver", action="store_true", help="Leave the critical switch word erased so the gold image is booted.")
  parser.add_argument("out", type=str, help="Output .mcs file.")
  args = parser.parse_args()

  quickboot_builder(args.gold, args.silver, args.out, args.bus_profile, args.multiboot, args.sector_size, not args.disable_silver)

  print("Done")
