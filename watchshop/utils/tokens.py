import secrets
import time


def make_order_number() -> str:
    # ORD-<epoch ms>-<48 random bits>: no lookup against the ledger,
    # uniqueness comes from the random part (and the UNIQUE column)
    return "ORD-{0}-{1}".format(int(time.time() * 1000), secrets.token_hex(6).upper())
