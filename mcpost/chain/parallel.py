from multiprocessing import Process, Pipe, Barrier
from multiprocessing.connection import Connection
from threading import BrokenBarrierError
from mcpost.chain.error_log import ErrorLog
from mcpost.chain.loading import read_chain_file, merge_chain_files
from mcpost.chain.store import WeightedChain


def loading_process(
    filename: str,
    burn: int,
    thin: int,
    connection: Connection,
    barrier: Barrier,
):
    # workers never print - all reporting is done by the coordinating process
    try:
        result = read_chain_file(filename, burn=burn, thin=thin, display=False)
    except Exception as error:
        result = error
    connection.send(result)
    connection.close()
    # wait until the coordinator has collected every chain
    try:
        barrier.wait()
    except BrokenBarrierError:
        pass


class ParallelChainLoader:
    """
    Loads a set of chain files concurrently, with a separate process reading
    each file, and merges them into one ``WeightedChain``.

    Each worker process sends the samples it has read back to the coordinating
    process through a pipe and then waits at a barrier. Once every chain has
    been collected the coordinator joins the barrier, releasing the workers,
    and alone carries out the merging, filtering, sorting and all status
    output. If any worker fails to read its file, the error is raised by
    ``load`` after the barrier has been passed, and no chain is returned.
    If a worker process dies before sending its chain, the barrier is aborted,
    the remaining workers are stopped and ``ChildProcessError`` is raised.

    :param filenames: Paths of the chain files.
    :param int burn: Number of lines to discard from the start of each chain.
    :param int thin: Only every ``thin``'th line after the burn-in is kept.
    :param error_log: An optional ``ErrorLog`` of likelihood error estimates.
    :param bool display: Whether the coordinating process prints status messages.
    """

    worker = staticmethod(loading_process)
    # seconds the coordinator waits at the barrier for workers which have
    # already sent their chains
    barrier_timeout = 60.0

    def __init__(
        self,
        filenames: list[str],
        burn: int = 0,
        thin: int = 1,
        error_log: ErrorLog = None,
        display: bool = True,
    ):
        if len(filenames) == 0:
            raise ValueError(
                """\n
                \r[ ParallelChainLoader error ]
                \r>> At least one chain file is required.
                """
            )

        if thin < 1:
            raise ValueError(
                f"""\n
                \r[ ParallelChainLoader error ]
                \r>> The thin factor must be at least 1, but the value
                \r>> given was {thin}.
                """
            )

        self.filenames = list(filenames)
        self.burn = burn
        self.thin = thin
        self.error_log = error_log
        self.display = display

    def load(self) -> WeightedChain:
        """
        Read every chain file in a separate process and merge the results.

        :return: The merged ``WeightedChain``, sorted by decreasing weight.
        """
        # the coordinator is also a party to the barrier
        barrier = Barrier(len(self.filenames) + 1)
        connections = []
        processes = []
        completed = False
        try:
            for filename in self.filenames:
                parent_ctn, child_ctn = Pipe()
                p = Process(
                    target=self.worker,
                    args=(filename, self.burn, self.thin, child_ctn, barrier),
                )
                p.start()
                # only the worker may hold the sending end, so that the
                # pipe reports EOF if the worker dies
                child_ctn.close()
                connections.append(parent_ctn)
                processes.append(p)

            results = [
                self.__receive(ctn, p, f)
                for ctn, p, f in zip(connections, processes, self.filenames)
            ]
            barrier.wait(timeout=self.barrier_timeout)
            completed = True
        finally:
            if not completed:
                barrier.abort()
                [p.terminate() for p in processes if p.is_alive()]
            [p.join() for p in processes]
            [ctn.close() for ctn in connections]

        for result in results:
            if isinstance(result, Exception):
                raise result

        for p, filename in zip(processes, self.filenames):
            if p.exitcode != 0:
                raise ChildProcessError(
                    f"""\n
                    \r[ ParallelChainLoader error ]
                    \r>> The process reading {filename} exited
                    \r>> with code {p.exitcode}.
                    """
                )

        return merge_chain_files(
            results, error_log=self.error_log, display=self.display
        )

    @staticmethod
    def __receive(connection: Connection, process: Process, filename: str):
        try:
            return connection.recv()
        except EOFError:
            process.join()
            raise ChildProcessError(
                f"""\n
                \r[ ParallelChainLoader error ]
                \r>> The process reading {filename} exited with code
                \r>> {process.exitcode} before sending its chain.
                """
            )
