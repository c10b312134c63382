from gifencoder import ByteSink


def test_write_short_is_little_endian():
    sink = ByteSink()
    sink.write_short(0x1234)
    sink.write_short(65535)
    assert sink.getvalue() == b"\x34\x12\xff\xff"


def test_write_byte_masks_to_eight_bits():
    sink = ByteSink()
    sink.write_byte(0x13B)
    assert sink.getvalue() == b"\x3b"


def test_write_bytes_with_offset_and_length():
    sink = ByteSink()
    sink.write_bytes(b"abcdef", 2, 3)
    sink.write_bytes([1, 2])
    assert sink.getvalue() == b"cde\x01\x02"


def test_write_ascii():
    sink = ByteSink()
    sink.write_ascii("NETSCAPE2.0")
    assert sink.getvalue() == b"NETSCAPE2.0"
    assert len(sink) == 11


def test_drain_empties_the_buffer():
    sink = ByteSink()
    sink.write_ascii("GIF89a")
    assert sink.drain() == b"GIF89a"
    assert len(sink) == 0
    sink.write_byte(0x3B)
    assert sink.getvalue() == b"\x3b"
