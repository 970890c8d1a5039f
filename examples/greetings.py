"""Greet a handful of people from child processes, a few at a time."""

import argparse
import os
import random
import time

from tqdm import tqdm

from forkpool import ForkPool

NAMES = [
    "Fred",
    "Jim",
    "Lily",
    "Steve",
    "Jessica",
    "Bob",
    "Dave",
    "Christine",
    "Rico",
    "Sara",
]


def main():
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--workers", type=int, default=5)
    parser.add_argument("--delay", type=float, default=0.2)
    parser.add_argument("--serialize-as", default="native-binary")
    args = parser.parse_args()

    pool = ForkPool(args.workers, serialize_as=args.serialize_as, blocking_sleep=0.05)
    greetings = {}
    progress = tqdm(total=len(NAMES), disable=None)

    @pool.on_finish
    def collect(pid, exit_code, name, exit_signal, core_dumped, greeting):
        if greeting is None:
            progress.write(f"{name} (pid {pid}) sent nothing, exit code {exit_code}")
        else:
            greetings[name] = greeting
        progress.update()

    with pool:
        for number, name in enumerate(NAMES):
            if pool.spawn(name):
                continue
            time.sleep(random.uniform(0, args.delay))
            if number % 4 == 3:
                pool.finish(number)
            pool.finish(0, f"Hello from {name}, child {number} (pid {os.getpid()})")
    progress.close()

    for name in NAMES:
        if name in greetings:
            print(greetings[name].split(" (pid")[0])
    print(f"{len(greetings)} greetings received")


if __name__ == "__main__":
    main()
