# author: Quickboot tools maintainers

import argparse
import tempfile
import unittest
from pathlib import Path

import numpy as np

import bitstream_factory as factory
import mcs
import packet_spec as pkt_spec
import quickboot_spec as qb_spec
import register_patch as reg_patch
from bitstream import Bitstream
from errors import LayoutError
from parse_bitstream import parse_bitstream
from quickboot_builder import quickboot_builder
from quickboot_gold import quickboot_gold
from quickboot_multi_builder import parse_design_arg
from quickboot_silver import quickboot_silver

def read_mcs_file(
  path: Path
) -> list[str]:
  with open(path, "r") as f:
    return f.readlines()

class ScriptTests(unittest.TestCase):

  def setUp(self):
    self.tmp_dir = tempfile.TemporaryDirectory()
    self.tmp = Path(self.tmp_dir.name)
    self.silver_raw = factory.make_bitstream()
    self.silver_path = self.tmp / "silver.bit"
    self.silver_path.write_bytes(factory.make_bit_file(self.silver_raw))

  def tearDown(self):
    self.tmp_dir.cleanup()

  def test_gold_then_builder(self):
    gold_path = self.tmp / "gold.bin"
    quickboot_gold(self.silver_path, gold_path, qb_spec.BusProfile.SPI)
    gold = Bitstream.from_file_path(gold_path).data
    self.assertEqual(reg_patch.find_register_write(gold, pkt_spec.Register.AXSS), qb_spec.AXSS_GOLD)

    # The gold image keeps the WBSTAR write of the silver image (0x00100000).
    mcs_path = self.tmp / "flash.mcs"
    quickboot_builder(gold_path, self.silver_path, mcs_path, qb_spec.BusProfile.SPI, None, None, True)
    (start_address, image) = mcs.decode_mcs(read_mcs_file(mcs_path))
    self.assertEqual(start_address, 0)
    self.assertEqual(image.size, 0x100000 + self.silver_raw.size)
    self.assertEqual(image[4092:4096].tobytes(), b"\xaa\x99\x55\x66")
    self.assertTrue(np.array_equal(image[4160 : 4160 + gold.size], gold))
    self.assertTrue(np.array_equal(image[0x100000:], self.silver_raw))

  def test_builder_needs_multiboot(self):
    gold_raw = factory.make_bitstream(prologue=((pkt_spec.Register.AXSS, qb_spec.AXSS_GOLD),))
    gold_path = self.tmp / "gold.bit"
    gold_path.write_bytes(gold_raw.tobytes())
    mcs_path = self.tmp / "flash.mcs"
    with self.assertRaises(LayoutError):
      quickboot_builder(gold_path, self.silver_path, mcs_path, qb_spec.BusProfile.SPI, None, None, True)

    quickboot_builder(gold_path, self.silver_path, mcs_path, qb_spec.BusProfile.SPI, 0x8000, None, False)
    (_, image) = mcs.decode_mcs(read_mcs_file(mcs_path))
    self.assertEqual(image.size, 0x8000 + self.silver_raw.size)
    self.assertTrue(np.all(image[:4096] == 0xff))

  def test_silver(self):
    out_path = self.tmp / "silver_ready.bin"
    quickboot_silver(self.silver_path, out_path, 288)
    silver = np.frombuffer(out_path.read_bytes(), dtype=np.uint8)
    self.assertEqual(silver.size, self.silver_raw.size - 32 + 288)
    self.assertTrue(np.all(silver[:288] == 0xff))
    # Patch the BSPI value back in an unpadded copy to check it.
    unpadded = np.concatenate((silver[:32], silver[288:]))
    self.assertEqual(reg_patch.find_register_write(unpadded, pkt_spec.Register.BSPI), qb_spec.MULTI_DESIGN_BSPI_MODE)

  def test_silver_from_stream_without_padding(self):
    raw = factory.make_bitstream(
      prologue=factory.DEFAULT_PROLOGUE + ((pkt_spec.Register.MASK, 0xffffffff),),
      pad_ff=0,
      bus_width_detect=False
    )
    raw_path = self.tmp / "raw.bin"
    raw_path.write_bytes(raw.tobytes())
    out_path = self.tmp / "silver_ready.bin"
    quickboot_silver(raw_path, out_path, 288)

    silver = np.frombuffer(out_path.read_bytes(), dtype=np.uint8)
    self.assertEqual(silver.size, raw.size + 288)
    self.assertTrue(np.all(silver[:288] == 0xff))
    self.assertEqual(silver[288:292].tobytes(), b"\xaa\x99\x55\x66")
    self.assertEqual(reg_patch.find_register_write(silver[288:], pkt_spec.Register.BSPI), qb_spec.MULTI_DESIGN_BSPI_MODE)
    self.assertEqual(reg_patch.find_register_write(silver[288:], pkt_spec.Register.MASK), 0xffffffff)

  def test_parse_bitstream(self):
    out_path = self.tmp / "dump.txt"
    parse_bitstream(self.silver_path, out_path)
    lines = out_path.read_text().splitlines()
    self.assertIn("design = top", lines)
    self.assertIn("part = 7a35tcsg324", lines)
    self.assertIn("bus_width_detect = 0x00000020", lines)
    self.assertIn("sync_word = 0x00000030", lines)
    self.assertTrue(any("REG = AXSS" in line for line in lines))
    self.assertTrue(any("(DESYNC)" in line for line in lines))

  def test_parse_design_arg(self):
    self.assertEqual(parse_design_arg("2=a/b.bit"), (2, "a/b.bit"))
    self.assertEqual(parse_design_arg("0x1=c.bit"), (1, "c.bit"))
    with self.assertRaises(argparse.ArgumentTypeError):
      parse_design_arg("c.bit")
    with self.assertRaises(argparse.ArgumentTypeError):
      parse_design_arg("x=c.bit")
