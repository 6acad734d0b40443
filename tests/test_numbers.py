import unittest

from gradeseer.core.numbers import (
    clamp_0_100,
    format_number,
    round2,
    round_int,
    safe_ratio,
    to_number,
    to_optional_number,
)


class NumberTests(unittest.TestCase):
    def test_to_number(self):
        self.assertEqual(to_number("12.5"), 12.5)
        self.assertEqual(to_number(" 7 "), 7.0)
        self.assertEqual(to_number(3), 3.0)
        for junk in (None, "", "abc", "nan", "inf", True, object()):
            self.assertEqual(to_number(junk), 0.0)
        self.assertEqual(to_number("abc", 3.0), 3.0)

    def test_huge_integers_fall_back_to_default(self):
        self.assertEqual(to_number(10**400), 0.0)
        self.assertEqual(to_number(10**400, 5.0), 5.0)
        self.assertEqual(to_number("1e400"), 0.0)

    def test_to_optional_number(self):
        self.assertIsNone(to_optional_number(None))
        self.assertEqual(to_optional_number("x"), 0.0)
        self.assertEqual(to_optional_number("4"), 4.0)

    def test_rounding_is_half_up(self):
        self.assertEqual(round2(2.675), 2.68)
        self.assertEqual(round2(1.005), 1.01)
        self.assertEqual(round2(2.4375), 2.44)
        self.assertEqual(round_int(2.5), 3)
        self.assertEqual(round_int(33.333), 33)

    def test_helpers(self):
        self.assertEqual(clamp_0_100(-4), 0.0)
        self.assertEqual(clamp_0_100(140), 100.0)
        self.assertEqual(safe_ratio(3, 0), 0.0)
        self.assertEqual(safe_ratio(1, 4), 0.25)
        self.assertEqual(format_number(3.0), "3")
        self.assertEqual(format_number(2.5), "2.5")


if __name__ == "__main__":
    unittest.main()
