# author: Quickboot tools maintainers

import argparse
from pathlib import Path

import gold_image
import helpers
import image_compat
import quickboot_spec as qb_spec
from bitstream import Bitstream


# Converts a silver bitstream into a gold bitstream. The silver image must carry
# the "SILV" AXSS marker.
def quickboot_gold(
  silver_path: str | Path,
  out: str | Path,
  bus_profile: qb_spec.BusProfile
) -> None:
  print(f"Reading silver file {silver_path}")
  silver = Bitstream.from_file_path(silver_path).data

  image_compat.check_silver_image_compatible(silver)

  writes = gold_image.gold_register_writes(bus_profile)
  (gold, prev_values, num_crcs_disabled) = gold_image.derive_gold_image(silver, writes)
  for (reg_addr, value) in writes:
    print(f"{reg_addr.name} (gold): {helpers.hex_word(value)} (was: {helpers.hex_word(prev_values[reg_addr])})")
  print(f"Disabled {num_crcs_disabled} CRC check(s)")

  with open(out, "wb") as f:
    f.write(gold.tobytes())

# Main program (if executed as script)
if __name__ == "__main__":
  parser = argparse.ArgumentParser(description="Converts a silver bitstream into a quickboot gold bitstream.")
  profile_group = parser.add_mutually_exclusive_group(required=True)
  profile_group.add_argument("--spi", action="store_const", dest="bus_profile", const=qb_spec.BusProfile.SPI, help="Target SPI flash.")
  profile_group.add_argument("--bpi16", action="store_const", dest="bus_profile", const=qb_spec.BusProfile.BPI16, help="Target 16-bit BPI flash.")
  parser.add_argument("silver", type=str, help="Input silver bitstream (.bit).")
  parser.add_argument("out", type=str, help="Output gold bitstream.")
  args = parser.parse_args()

  quickboot_gold(args.silver, args.out, args.bus_profile)

  print("Done")
