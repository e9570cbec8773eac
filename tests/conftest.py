import pytest

import steward
from steward.examples.taskrunner import Job, TaskRunner


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in steward.EngineConfig.model_fields:
        monkeypatch.delenv(f'STEWARD_{name.upper()}', raising=False)


@pytest.fixture
def anyio_backend():
    return 'asyncio'


@pytest.fixture
def client():
    return steward.MemoryClient()


@pytest.fixture
def make_taskrunner():
    def make(name='hello', namespace='default', **spec):
        spec.setdefault('command', ['echo', 'hello'])
        spec.setdefault('image', 'busybox')
        return TaskRunner(
            metadata=steward.ObjectMeta(name=name, namespace=namespace),
            spec=spec,
        )

    return make


@pytest.fixture
def make_job():
    def make(name='hello-job', namespace='default', **status):
        return Job(
            metadata=steward.ObjectMeta(name=name, namespace=namespace),
            spec={'parallelism': 1},
            status=status,
        )

    return make
