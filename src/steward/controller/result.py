import dataclasses


@dataclasses.dataclass(frozen=True)
class Result:
    """The outcome of a successful reconciliation.

    `requeue` requeues the request right away, `requeue_after` requeues it
    after the given number of seconds. The default is to not requeue.
    """

    requeue: bool = False
    requeue_after: float = None

    @property
    def is_requeue(self):
        return self.requeue or bool(self.requeue_after)
