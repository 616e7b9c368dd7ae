# Waits for the printer to finish work after a form is accepted (the web UI
# shows a ~7s waiting screen). wait() returns the last check result; the caller
# decides whether it is acceptable.

import logging
import time

logger = logging.getLogger("printer_cert.settle")

DEFAULT_SETTLE_SECONDS = 10


class FixedDelay:
    def __init__(self, seconds=DEFAULT_SETTLE_SECONDS, sleep=time.sleep):
        self.seconds = seconds
        self.sleep = sleep

    def wait(self, check, done=None):
        logger.debug(f"Waiting {self.seconds}s for the printer to settle...")
        self.sleep(self.seconds)
        return check()


class Polling:
    def __init__(self, interval=2, timeout=30, sleep=time.sleep, clock=time.monotonic):
        self.interval = interval
        self.timeout = timeout
        self.sleep = sleep
        self.clock = clock

    def wait(self, check, done=None):
        deadline = self.clock() + self.timeout
        while True:
            self.sleep(self.interval)
            result = check()
            if done is None or done(result):
                return result
            if self.clock() >= deadline:
                logger.debug(f"Printer did not settle within {self.timeout}s")
                return result
