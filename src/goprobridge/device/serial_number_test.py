import unittest

from hamcrest import assert_that, calling, is_, none, raises

from goprobridge.device.serial_number import SerialNumberMatcher, derive_address, extract_serial


class ExtractSerialTest(unittest.TestCase):

    def test_serial_alone(self):
        assert_that(extract_serial("C3601370011883"), is_("C3601370011883"))

    def test_serial_with_prefix(self):
        assert_that(extract_serial("GoPro-C3601370011883"), is_("C3601370011883"))

    def test_serial_surrounded(self):
        assert_that(extract_serial("GoPro C3601370011883 (Hero 13)"), is_("C3601370011883"))

    def test_first_serial_wins(self):
        assert_that(extract_serial("C3601370011883-C3601370099999"), is_("C3601370011883"))

    def test_no_serial(self):
        assert_that(extract_serial("GoPro-short"), is_(none()))

    def test_empty_and_none(self):
        assert_that(extract_serial(""), is_(none()))
        assert_that(extract_serial(None), is_(none()))

    def test_thirteen_characters_is_not_a_serial(self):
        assert_that(extract_serial("GoPro-C360137001188"), is_(none()))

    def test_fifteen_characters_is_not_a_serial(self):
        assert_that(extract_serial("GoPro-C36013700118834"), is_(none()))

    def test_lowercase_is_not_a_serial(self):
        assert_that(extract_serial("gopro-c3601370011883"), is_(none()))

    def test_matcher_is_callable(self):
        assert_that(SerialNumberMatcher()("x-C3601370011883"), is_("C3601370011883"))

    def test_matcher_pattern_can_be_replaced(self):
        sut = SerialNumberMatcher(r"[0-9]{4}")
        assert_that(sut.extract("cam-1234"), is_("1234"))
        assert_that(sut.extract("cam-12345"), is_(none()))


class DeriveAddressTest(unittest.TestCase):

    def test_last_three_characters(self):
        assert_that(derive_address("C3601370011883"), is_("172.28.183.51"))

    def test_other_serial(self):
        assert_that(derive_address("C3441324500412"), is_("172.24.112.51"))

    def test_deterministic(self):
        assert_that(derive_address("C3601370011883"), is_(derive_address("C3601370011883")))

    def test_letters_are_substituted(self):
        assert_that(derive_address("C36013700118AB"), is_("172.28.1AB.51"))

    def test_strict_rejects_letters(self):
        assert_that(calling(derive_address).with_args("C36013700118AB", True), raises(ValueError))

    def test_strict_accepts_digits(self):
        assert_that(derive_address("C3601370011883", strict=True), is_("172.28.183.51"))

    def test_too_short(self):
        assert_that(calling(derive_address).with_args("AB"), raises(ValueError))

    def test_exactly_three(self):
        assert_that(derive_address("123"), is_("172.21.123.51"))
