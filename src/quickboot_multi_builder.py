# author: Quickboot tools maintainers

import argparse
from pathlib import Path

import helpers
import mcs
import quickboot_spec as qb_spec
from bitstream import Bitstream
from flash_image import Design, FlashLayout, assemble


# Parses "SLOT=PATH" design arguments.
def parse_design_arg(
  arg: str
) -> tuple[int, str]:
  (slot_str, sep, path) = arg.partition("=")
  if (sep != "=") or (path == ""):
    raise argparse.ArgumentTypeError(f"Expected SLOT=PATH, but received \"{arg}\"")
  try:
    slot = int(slot_str, 0)
  except ValueError:
    raise argparse.ArgumentTypeError(f"Invalid design slot \"{slot_str}\"")
  return (slot, path)

# Assembles up to 4 silver bitstreams into a multi-design quickboot .mcs file.
# Each design slot gets a gold image derived from its silver image, the silver
# image itself and a quickboot header that jumps to it.
def quickboot_multi_builder(
  design_paths: list[tuple[int, str]],
  out: str | Path,
  enable_silver: bool,
  silver_pad_ff: int
) -> None:
  designs: list[Design] = list()
  for (slot, path) in design_paths:
    print(f"Reading silver file {path} (slot {slot})")
    silver = Bitstream.from_file_path(path).data
    designs.append(Design(silver, slot=slot, name=Path(path).name))

  layout = FlashLayout.multi_design(enable_silver, silver_pad_ff)
  image = assemble(designs, layout)

  for slot in image.slots:
    print(f"Design {slot.name} in slot {slot.slot} (base {helpers.hex_word(slot.slot_base)})")
    for (reg_addr, prev_value) in slot.gold_prev_values.items():
      print(f"... {reg_addr.name} (gold) was {helpers.hex_word(prev_value)}")
    for (reg_addr, prev_value) in slot.silver_prev_values.items():
      print(f"... {reg_addr.name} (silver) was {helpers.hex_word(prev_value)}")
    print(f"... disabled {slot.num_crcs_disabled} CRC check(s) in gold image")
    print(f"... gold image: {slot.gold_size} bytes at {helpers.hex_word(slot.gold_address)}")
    print(f"... silver image: {slot.silver_size} bytes at {helpers.hex_word(slot.silver_address)}")
    print(f"... critical switch word at {helpers.hex_word(slot.critical_switch_address)}, WBSTAR = {helpers.hex_word(slot.wbstar)}")

  print(f"Writing {image.size_bytes() - image.start_address} bytes starting at {helpers.hex_word(image.start_address)} to {out}")
  mcs.write_mcs_file(out, image.to_mcs_lines())

# Main program (if executed as script)
if __name__ == "__main__":
  parser = argparse.ArgumentParser(description="Assembles up to 4 silver bitstreams into a multi-design quickboot .mcs flash image.")
  parser.add_argument("--design", type=parse_design_arg, action="append", required=True, help=f"Silver bitstream of a design slot (0 to {qb_spec.MULTI_DESIGN_MAX_SLOTS - 1}), as SLOT=PATH. Can be repeated.")
  parser.add_argument("--disable-silver", action="store_true", help="Leave the critical switch words erased so the gold images are booted.")
  parser.add_argument("--pad-ff", type=int, default=qb_spec.MULTI_DESIGN_SILVER_PAD_FF, help="Minimum number of 0xff bytes in front of every silver image.")
  parser.add_argument("out", type=str, help="Output .mcs file.")
  args = parser.parse_args()

  quickboot_multi_builder(args.design, args.out, not args.disable_silver, args.pad_ff)

  print("Done")
