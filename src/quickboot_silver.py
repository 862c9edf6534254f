# author: Quickboot tools maintainers

import argparse
from pathlib import Path

import helpers
import packet_spec as pkt_spec
import quickboot_spec as qb_spec
import register_patch as reg_patch
from bitstream import Bitstream, pad_leading_ff


# Converts a raw .bit file into a silver bitstream ready for field installation
# in a multi-design flash. Not needed for images given to
# quickboot_multi_builder.py, which applies the same changes itself.
def quickboot_silver(
  raw_path: str | Path,
  out: str | Path,
  pad_ff: int
) -> None:
  print(f"Reading raw file {raw_path}")
  silver = Bitstream.from_file_path(raw_path).data

  # The BSPI write is patched before padding so the SYNC WORD stays within the
  # search window.
  prev_bspi = reg_patch.replace_register_write(silver, pkt_spec.Register.BSPI, qb_spec.MULTI_DESIGN_BSPI_MODE)
  print(f"BSPI (silver): {helpers.hex_word(qb_spec.MULTI_DESIGN_BSPI_MODE)} (was: {helpers.hex_word(prev_bspi)})")

  silver = pad_leading_ff(silver, pad_ff)

  with open(out, "wb") as f:
    f.write(silver.tobytes())

# Main program (if executed as script)
if __name__ == "__main__":
  parser = argparse.ArgumentParser(description="Prepares a raw bitstream for use as a silver image.")
  parser.add_argument("raw", type=str, help="Input bitstream (.bit).")
  parser.add_argument("out", type=str, help="Output silver bitstream.")
  parser.add_argument("--pad-ff", type=int, default=qb_spec.MULTI_DESIGN_SILVER_PAD_FF, help="Minimum number of 0xff bytes in front of the bitstream.")
  args = parser.parse_args()

  quickboot_silver(args.raw, args.out, args.pad_ff)

  print("Done")
