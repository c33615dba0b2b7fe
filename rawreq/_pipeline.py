# A fixed-size pool of workers between two bounded queues, with results
# handed to an emit() callback at the end:
#
#   source -> producer -> [requests] -> N workers -> [results] -> consumer
#
# The producer hands out requests in the order they arrive, but with more
# than one worker the results come out in whatever order they finish.
#
# Shutting down: when the source runs dry, the producer puts one END_OF_INPUT
# marker per worker on the request queue. A worker that gets one stops, and
# passes an END_OF_INPUT on to the consumer; the consumer stops once it has
# seen one from every worker. So by the time the consumer is done, every
# request that was read has produced exactly one result, and every task has
# exited.
#
# Both queues hold at most N items, so a slow consumer stalls the workers and
# busy workers stall the producer -- nothing piles up in memory.

import curio
import structlog

from ._executor import RequestExecutor
from ._util import make_sentinel

__all__ = ["Pipeline", "DEFAULT_TIMEOUT"]

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 5.0

END_OF_INPUT = make_sentinel("END_OF_INPUT")


class Pipeline:
    """Runs requests concurrently.

    Args:
        concurrency (int): Number of requests in flight at once; at least 1.
        timeout (float): Seconds each request may take.
        ssl_context (ssl.SSLContext): Shared by all TLS connections; see
            :class:`~rawreq.RequestExecutor`.

    """
    def __init__(self, concurrency=1, timeout=DEFAULT_TIMEOUT,
                 ssl_context=None):
        if concurrency < 1:
            raise ValueError(
                "concurrency must be at least 1, not {!r}".format(concurrency))
        self.concurrency = concurrency
        self.timeout = timeout
        self.executor = RequestExecutor(timeout, ssl_context=ssl_context)

    async def _send_end_markers(self, requests):
        for _ in range(self.concurrency):
            await requests.put(END_OF_INPUT)

    async def _produce(self, source, requests):
        # The source is usually a blocking iterator over stdin, so it gets
        # pulled from a thread.
        it = iter(source)
        try:
            while True:
                request = await curio.run_in_thread(next, it, END_OF_INPUT)
                if request is END_OF_INPUT:
                    break
                await requests.put(request.with_defaults())
        except Exception:
            # Let the workers finish what they already have, then fail.
            await self._send_end_markers(requests)
            raise
        await self._send_end_markers(requests)

    async def _work(self, requests, results):
        while True:
            request = await requests.get()
            if request is END_OF_INPUT:
                break
            result = await self.executor.execute(request)
            await results.put(result)
        await results.put(END_OF_INPUT)

    async def _consume(self, results, emit):
        running = self.concurrency
        emitted = 0
        while running:
            result = await results.get()
            if result is END_OF_INPUT:
                running -= 1
                continue
            emit(result)
            emitted += 1
        return emitted

    async def run(self, source, emit):
        """Execute every request from ``source``, passing results to ``emit``.

        ``source`` is an iterable of :class:`~rawreq.RequestDescriptor`;
        their defaults get resolved here. ``emit`` is called with each
        :class:`~rawreq.ResultRecord`, one at a time, from a single task.

        Returns the number of results emitted. If ``source`` or ``emit``
        raises, that exception propagates out of here after all tasks have
        been stopped.

        """
        requests = curio.Queue(maxsize=self.concurrency)
        results = curio.Queue(maxsize=self.concurrency)
        logger.info("pipeline starting",
                    concurrency=self.concurrency, timeout=self.timeout)

        producer = await curio.spawn(self._produce, source, requests)
        tasks = [producer]
        for _ in range(self.concurrency):
            tasks.append(await curio.spawn(self._work, requests, results))
        consumer = await curio.spawn(self._consume, results, emit)
        tasks.append(consumer)

        try:
            emitted = await consumer.join()
            await producer.join()
        except curio.TaskError as exc:
            # Show callers the original failure rather than curio's wrapper
            raise exc.__cause__
        finally:
            for task in tasks:
                await task.cancel()

        logger.info("pipeline finished", results=emitted)
        return emitted
