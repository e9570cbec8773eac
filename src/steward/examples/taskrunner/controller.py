"""
A controller running the command of a TaskRunner in a Job.

Run it against an in-memory store with:

    steward -v run steward.examples.taskrunner:build_manager
"""

import logging

import steward
from steward import Readiness

from .resource import Job, TaskRunner


log = logging.getLogger(__name__)


FINALIZER = 'batch.example.com/finalizer'


def job_name(taskrunner):
    return f'{taskrunner.metadata.name}-job'


def job_labels(taskrunner):
    return {
        'app.kubernetes.io/name': 'taskrunner',
        'app.kubernetes.io/instance': taskrunner.metadata.name,
        'app.kubernetes.io/created-by': 'taskrunner-controller',
    }


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def validate(spec):
    """Return the spec with defaults applied, raise InvalidSpec if it is invalid."""
    command = spec.get('command')
    if not command or not isinstance(command, list) or not all(isinstance(c, str) for c in command):
        raise steward.InvalidSpec('command must be a non-empty list of strings')
    image = spec.get('image')
    if not image or not isinstance(image, str):
        raise steward.InvalidSpec('image must be a non-empty string')
    parallelism = spec.get('parallelism', 1)
    if not _is_int(parallelism) or not 1 <= parallelism <= 100:
        raise steward.InvalidSpec(f'parallelism must be between 1 and 100, got {parallelism!r}')
    deadline = spec.get('deadlineSeconds')
    if deadline is not None and (not _is_int(deadline) or deadline < 1):
        raise steward.InvalidSpec(f'deadlineSeconds must be at least 1, got {deadline!r}')
    return dict(spec, parallelism=parallelism)


class JobComponent(steward.ManagedComponent):
    name = 'job'
    resource = Job
    # Job status updates are only interesting when the pod counters change.
    predicates = [
        steward.fields_changed('status.active', 'status.succeeded', 'status.failed'),
    ]

    def desired(self, owner):
        spec = validate(owner.spec)
        job_spec = {
            'parallelism': spec['parallelism'],
            'template': {
                'spec': {
                    'restartPolicy': 'Never',
                    'containers': [
                        {
                            'name': 'task',
                            'image': spec['image'],
                            'command': list(spec['command']),
                        },
                    ],
                },
            },
        }
        if spec.get('deadlineSeconds') is not None:
            job_spec['activeDeadlineSeconds'] = spec['deadlineSeconds']
        job = Job(
            metadata=steward.ObjectMeta(
                name=job_name(owner),
                namespace=owner.metadata.namespace,
                labels=job_labels(owner),
            ),
            spec=job_spec,
        )
        return [job]

    def readiness(self, job):
        status = job.status or {}
        if status.get('succeeded', 0) > 0:
            return Readiness.SUCCEEDED, 'TaskCompleted', 'Task completed successfully'
        if status.get('failed', 0) > 0:
            return Readiness.FAILED, 'TaskFailed', 'Task execution failed'
        if status.get('active', 0) > 0:
            return Readiness.PROGRESSING, 'TaskRunning', 'Task is currently running'
        return Readiness.PENDING, 'TaskPending', 'Task is pending execution'

    def status_fields(self, job):
        status = job.status or {}
        return {
            'active': status.get('active', 0),
            'succeeded': status.get('succeeded', 0),
            'failed': status.get('failed', 0),
        }


def build_manager(config=None, client=None):
    """Create a manager with the TaskRunner controller.

    Without a client the manager works on an empty in-memory store.
    """
    if config is None:
        config = steward.EngineConfig(finalizer=FINALIZER)
    elif config.finalizer == steward.DEFAULT_FINALIZER:
        config = config.model_copy(update={'finalizer': FINALIZER})
    if client is None:
        log.info('no client given, using an in-memory store')
        client = steward.MemoryClient()

    manager = steward.Manager(client, config=config)
    taskrunner_ctl = manager.controller(TaskRunner)
    taskrunner_ctl.component(JobComponent())
    return manager
