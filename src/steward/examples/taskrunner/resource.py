import typing

import steward


class TaskRunner(steward.Object):
    """Runs a command to completion in a Job.

    spec:
      command: non-empty list of strings
      image: container image
      parallelism: 1-100, default 1
      deadlineSeconds: optional, at least 1
      managementState: Managed, Unmanaged or Removed

    status:
      phase, conditions, active, succeeded, failed, observedGeneration
    """

    apiVersion: typing.ClassVar[str] = 'batch.example.com/v1'
    kind: typing.ClassVar[str] = 'TaskRunner'


Job = steward.create_resource('batch/v1', 'Job')
