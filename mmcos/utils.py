from pathlib import Path
import time
from contextlib import contextmanager
import logging as log


@contextmanager
def timeit_context(name):
    start_time = time.time()
    yield
    elapsed_time = time.time() - start_time
    log.info('[{}] finished in {} ms'.format(name, int(elapsed_time * 1_000)))


def clamp(n, _min, _max):
    return max(_min, min(_max, n))


def read_config_file(file: str, keys: list[str], required=True):
    vals = [None] * len(keys)
    lines = Path(file).read_text().strip().split('\n')
    for line in lines:
        line = line.strip()
        if line == "" or line.startswith("#"):
            continue
        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip()
        try:
            vals[keys.index(key)] = val
        except ValueError as e:
            log.warning(f"Ignoring unknown config entry in {file}: {key}")
    ret = dict()
    for k,v in zip(keys, vals):
        if v is None:
            if required:
                raise Exception(f'missing config entry in {file} for key: {k}')
            continue
        ret[k] = v
    return ret
