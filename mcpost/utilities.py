import sys
from time import time


class StatusPrinter:
    """
    Writes status messages and progress updates to stdout. If ``display``
    is ``False`` every method is replaced by a no-op, so callers never
    need to check whether output is wanted.
    """

    def __init__(self, display: bool = True, leading_msg: str = None):
        self.lead = "" if leading_msg is None else leading_msg

        if not display:
            self.message = self.__no_status
            self.percent_progress = self.__no_status
            self.percent_final = self.__no_status

    def message(self, text: str):
        sys.stdout.write(f"  {self.lead}{text}\n")
        sys.stdout.flush()

    def percent_progress(self, t_start: float, current_itr: int, total_itr: int):
        dt = time() - t_start
        pct = int(100 * (current_itr + 1) / total_itr)
        eta = int(dt * (total_itr / (current_itr + 1) - 1))
        sys.stdout.write(
            f"\r  {self.lead}   [ {pct}% complete  |  ETA: {eta} sec ]    "
        )
        sys.stdout.flush()

    def percent_final(self, t_start: float, total_itr: int):
        t_elapsed = int(time() - t_start)
        mins, secs = divmod(t_elapsed, 60)
        hrs, mins = divmod(mins, 60)
        sys.stdout.write(
            f"\r  {self.lead}   [ complete - {total_itr} points evaluated in {hrs}:{mins:02d}:{secs:02d} ]      "
        )
        sys.stdout.flush()
        sys.stdout.write("\n")

    @staticmethod
    def __no_status(*args):
        pass
