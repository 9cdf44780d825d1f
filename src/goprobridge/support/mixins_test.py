import unittest

from hamcrest import assert_that, equal_to, is_, is_not

from goprobridge.support.mixins import CommonEqualityMixin, StringerMixin


class Sample(CommonEqualityMixin, StringerMixin):
    def __init__(self, a=None, b=None):
        self.a = a
        self.b = b


class StringerMixinTest(unittest.TestCase):

    def test_stringer(self):
        assert_that(str(Sample("123")), is_("Sample:{'a': '123', 'b': None}"))


class CommonEqualityMixinTest(unittest.TestCase):

    def test_value_equivalence(self):
        e1 = Sample("123", 123)
        e2 = Sample("12" + "3", 123)
        assert_that(e1, is_(equal_to(e2)))
        assert_that(e1 != e2, is_(False))

        e1.b = 0
        assert_that(e1, is_not(equal_to(e2)))
        assert_that(e1 != e2, is_(True))

    def test_other_types_differ(self):
        assert_that(Sample() == object(), is_(False))
        assert_that(Sample() == None, is_(False))  # noqa: E711

    def test_hashable(self):
        e1 = Sample()
        assert_that({e1: 1}[e1], is_(1))
