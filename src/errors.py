# author: Quickboot tools maintainers

# Exceptions raised when a bitstream or a flash layout cannot be processed.
#
# Internal programming invariants are checked with asserts. Everything that
# depends on the contents of an input file raises one of the classes below so
# callers can report a bad source file without crashing. None of these are
# worth retrying: the same bytes always produce the same result.

class QuickbootError(Exception):
  pass

# Malformed or truncated packet framing.
class FormatError(QuickbootError):
  def __init__(
    self,
    byte_ofst: int,
    msg: str
  ) -> None:
    self.byte_ofst = byte_ofst
    super().__init__(f"{msg} (byte ofst 0x{byte_ofst:0>8x})")

class TruncatedPacketError(FormatError):
  def __init__(
    self,
    byte_ofst: int,
    num_bytes_expected: int,
    num_bytes_available: int
  ) -> None:
    self.num_bytes_expected = num_bytes_expected
    self.num_bytes_available = num_bytes_available
    super().__init__(byte_ofst, f"Truncated packet: expected {num_bytes_expected} bytes, but only {num_bytes_available} remain")

class MalformedPacketError(FormatError):
  pass

# A READ packet was found in the command prologue, where only writes are expected.
class UnexpectedReadError(FormatError):
  pass

# A matched register WRITE carries more (or less) than a single payload word.
class UnsupportedWordCountError(FormatError):
  def __init__(
    self,
    byte_ofst: int,
    reg_name: str,
    word_count: int
  ) -> None:
    self.word_count = word_count
    super().__init__(byte_ofst, f"Write to {reg_name} has word_count = {word_count}, expected 1")

class AlignmentError(QuickbootError):
  pass

# An image or address does not fit in the region allotted to it.
class CapacityError(QuickbootError):
  pass

class LayoutError(QuickbootError):
  pass

# The source image cannot be used for quickboot assembly.
class IncompatibleImageError(QuickbootError):
  pass

class SyncNotFoundError(IncompatibleImageError):
  def __init__(
    self,
    window: int
  ) -> None:
    self.window = window
    super().__init__(f"Unable to find sync word in the first {window} bytes of the bitstream")
