"""Short random identifiers that keep stripe file names of concurrent runs apart."""

import random

_b32_symbols = list('0123456789abcdefghjkmnpqrstvwxyz')


def urlb32_encode(i, zeropad=0):
    if not isinstance(i, int):
        raise TypeError('first input must be integer type')
    output = []
    while i > 0:
        i, digit = divmod(i, 32)
        output.append(_b32_symbols[digit])
    if zeropad > len(output):
        output.extend(['0'] * (zeropad - len(output)))
    output.reverse()
    return ''.join(output)


def get_run_id():
    # 6 symbols, 30 random bits
    max_int = 32**6 - 1
    return urlb32_encode(random.randint(0, max_int), zeropad=6)
