# dlc_oracle/numeric.py
"""
Numeric outcome digit decomposition.

An integer outcome is written as digit_count base-`base` digits, most
significant first. Signed ranges use offset-binary: with
offset = base ** digit_count // 2 the representable range is
[-offset, base ** digit_count - 1 - offset] and value + offset is encoded
as an unsigned number. There is no separate sign digit.

    encode(5, 3, 2)         -> [1, 0, 1]
    encode(-1, 3, 2, True)  -> [0, 1, 1]    (offset 4)
"""

from .errors import ValidationError


def _check_params(digit_count, base):
    if isinstance(base, bool) or not isinstance(base, int) or base < 2:
        raise ValidationError(f"Base must be an integer >= 2, got {base!r}")
    if isinstance(digit_count, bool) or not isinstance(digit_count, int) or digit_count < 1:
        raise ValidationError(f"digit_count must be an integer >= 1, got {digit_count!r}")


def value_range(digit_count: int, base: int, is_signed: bool = False) -> tuple[int, int]:
    """Inclusive (min, max) representable with the given digits."""
    _check_params(digit_count, base)
    span = base ** digit_count
    if is_signed:
        offset = span // 2
        return -offset, span - 1 - offset
    return 0, span - 1


def digits_for_range(max_value: int, base: int, is_signed: bool = False) -> int:
    """
    Smallest digit_count covering [0, max_value], or [-max_value, max_value]
    when signed.
    """
    if isinstance(max_value, bool) or not isinstance(max_value, int) or max_value < 0:
        raise ValidationError(f"max_value must be a non-negative integer, got {max_value!r}")
    digit_count = 1
    while True:
        low, high = value_range(digit_count, base, is_signed)
        if high >= max_value and (not is_signed or -low >= max_value):
            return digit_count
        digit_count += 1


def encode(value: int, digit_count: int, base: int, is_signed: bool = False) -> list[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Numeric outcome must be an integer, got {value!r}")
    low, high = value_range(digit_count, base, is_signed)
    if not low <= value <= high:
        raise ValidationError(
            f"Value {value} outside representable range [{low}, {high}] "
            f"for {digit_count} base-{base} digits"
        )
    n = value - low
    digits = [0] * digit_count
    for i in range(digit_count - 1, -1, -1):
        n, digits[i] = divmod(n, base)
    return digits


def decode(digits, base: int, is_signed: bool = False) -> int:
    digits = list(digits)
    if not digits:
        raise ValidationError("Cannot decode an empty digit sequence")
    low, _ = value_range(len(digits), base, is_signed)
    n = 0
    for d in digits:
        if isinstance(d, bool) or not isinstance(d, int) or not 0 <= d < base:
            raise ValidationError(f"Digit {d!r} is not in [0, {base})")
        n = n * base + d
    return n + low
