# -- Parallel Pass Dispatch -- #

'''
Data-parallel dispatch primitive and the atomics shared by its workers.

A pass is a callable taking a single worker index. dispatch(passId,
workerCount) runs the registered pass for every index in
[0, workerCount) and only returns once every worker has retired, so
each call is a full barrier: writes made by one pass are visible to
every worker of the next.

Workers have no identity beyond their index and no way to message one
another. The only shared mutable state they may touch goes through
AtomicIndexArray.exchange() and AtomicCounter.increment().
'''

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable

import numpy as np


######################################################################
# -- Atomics -- #
######################################################################

class AtomicCounter:
    '''
    Shared integer counter with an indivisible fetch-and-increment.

    Parameters:
    -----------
    initial : int
        Starting value
    '''

    def __init__(self, initial: int = 0) -> None:
        self._value = initial
        self._lock = threading.Lock()

    def increment(self, amount: int = 1) -> int:
        '''Add amount and return the value before the add.'''
        with self._lock:
            previous = self._value
            self._value += amount
        return previous

    def reset(self, value: int = 0) -> None:
        '''Set the counter (only between passes).'''
        with self._lock:
            self._value = value

    @property
    def value(self) -> int:
        '''Current counter value.'''
        return self._value


class AtomicIndexArray:
    '''
    Array of unsigned 32-bit indices with an indivisible exchange.

    Stands in for a GPU buffer updated with atomicExchange: two workers
    exchanging the same slot never both observe the same previous value.

    Parameters:
    -----------
    size : int
        Number of slots
    fill : int
        Initial value of every slot
    '''

    def __init__(self, size: int, fill: int) -> None:
        self._data = np.full(size, fill, dtype=np.uint32)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return self._data.shape[0]

    def __getitem__(self, index: int) -> int:
        return int(self._data[index])

    def exchange(self, index: int, value: int) -> int:
        '''
        Store value at index and return the previous contents.

        Parameters:
        -----------
        index : int
            Slot to exchange
        value : int
            New slot contents

        Returns:
        --------
        int : Value held by the slot before the exchange
        '''
        with self._lock:
            previous = int(self._data[index])
            self._data[index] = value
        return previous

    def fill(self, value: int) -> None:
        '''Reset every slot (only between passes).'''
        self._data.fill(value)

    @property
    def data(self) -> np.ndarray:
        '''Underlying array for read-only inspection between passes.'''
        return self._data


######################################################################
# -- Dispatcher -- #
######################################################################

class WorkerDispatcher:
    '''
    Runs named per-worker passes with a barrier at the end of each.

    With nThreads == 1 a pass is a plain sequential scan over worker
    indices. Otherwise the index range is split into contiguous chunks
    executed on a thread pool; dispatch() waits on every chunk before
    returning and re-raises the first worker exception.

    Parameters:
    -----------
    nThreads : int
        Number of pool threads (1 for sequential execution)
    '''

    def __init__(self, nThreads: int = 1) -> None:
        if nThreads < 1:
            raise ValueError(f'nThreads must be at least 1, got {nThreads}')
        self._nThreads = nThreads
        self._passes: dict[str, Callable[[int], None]] = {}
        self._executor: ThreadPoolExecutor | None = None
        self._dispatchCount = 0

    @property
    def nThreads(self) -> int:
        '''Number of worker threads.'''
        return self._nThreads

    @property
    def dispatchCount(self) -> int:
        '''Number of completed dispatches.'''
        return self._dispatchCount

    def register(self, passId: str, workerFn: Callable[[int], None]) -> None:
        '''
        Register a pass under a name.

        Parameters:
        -----------
        passId : str
            Pass name used by dispatch()
        workerFn : Callable[[int], None]
            Body executed once per worker index
        '''
        self._passes[passId] = workerFn

    def dispatch(self, passId: str, workerCount: int) -> None:
        '''
        Run a registered pass across workerCount workers.

        Returns only after all workers have retired.

        Parameters:
        -----------
        passId : str
            Name of a registered pass
        workerCount : int
            Number of logical workers

        Raises:
        -------
        KeyError : If no pass is registered under passId
        '''
        try:
            workerFn = self._passes[passId]
        except KeyError:
            raise KeyError(f'No pass registered under: {passId}') from None

        if self._nThreads == 1 or workerCount < 2:
            for workerIndex in range(workerCount):
                workerFn(workerIndex)
        else:
            self._dispatchChunked(workerFn, workerCount)

        self._dispatchCount += 1

    def _dispatchChunked(self, workerFn: Callable[[int], None], workerCount: int) -> None:
        '''Split the worker range over the pool and wait for every chunk.'''
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self._nThreads,
                thread_name_prefix='fluidsim-worker',
            )

        def runChunk(start: int, stop: int) -> None:
            for workerIndex in range(start, stop):
                workerFn(workerIndex)

        bounds = np.linspace(0, workerCount, self._nThreads + 1).astype(int)
        futures = [
            self._executor.submit(runChunk, int(start), int(stop))
            for start, stop in zip(bounds[:-1], bounds[1:])
            if stop > start
        ]

        # Barrier: every chunk retires before any error surfaces
        wait(futures)
        for future in futures:
            error = future.exception()
            if error is not None:
                raise error

    def shutdown(self) -> None:
        '''Release the thread pool.'''
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
