# author: Quickboot tools maintainers

import argparse
from pathlib import Path

import bitstream_spec as bit_spec
from bitstream import Bitstream
from magic_locator import find_magic


def dump_lines(
  bitstream: Bitstream
) -> list[str]:
  lines: list[str] = list()

  hdr = bitstream.header
  if hdr is None:
    lines.append("header = none (raw bitstream)")
  else:
    lines.append(f"design = {hdr.name}")
    lines.append(f"part = {hdr.fpga_part}")
    lines.append(f"date = {hdr.date} {hdr.time}")
    for (k, v) in hdr.options.items():
      lines.append(f"option {k} = {v}")

  data = bitstream.data
  lines.append(f"data_size_bytes = {data.size}")

  bus_width_ofst = find_magic(data, bit_spec.BUS_WIDTH_DETECT_MAGIC, 0, bit_spec.SYNC_SEARCH_WINDOW_BYTES)
  if bus_width_ofst is None:
    lines.append("bus_width_detect = none")
  else:
    lines.append(f"bus_width_detect = 0x{bus_width_ofst:0>8x}")

  sync_ofst = find_magic(data, bit_spec.SYNC_WORD_MAGIC, 0, data.size)
  if sync_ofst is None:
    lines.append("sync_word = none")
  else:
    lines.append(f"sync_word = 0x{sync_ofst:0>8x}")

  lines.append("")
  for packet in bitstream.packets:
    lines.append(str(packet))

  return lines

def parse_bitstream(
  bitstream_path: str | Path,
  out: str | Path | None
) -> None:
  bitstream = Bitstream.from_file_path(bitstream_path)
  lines = dump_lines(bitstream)

  if out is None:
    print("\n".join(lines))
  else:
    # Write output dump file.
    with open(out, "w") as f:
      f.write("\n".join(lines))

# Main program (if executed as script)
if __name__ == "__main__":
  parser = argparse.ArgumentParser(description="Dumps the packets of xilinx .bit files.")
  parser.add_argument("bitstream", type=str, help="Input bitstream (with or without header).")
  parser.add_argument("--out", type=str, help="Output bitstream dump (stdout if omitted).")
  args = parser.parse_args()

  parse_bitstream(args.bitstream, args.out)

  print("Done")
