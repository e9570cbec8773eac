import dataclasses
import enum


class EventKind(str, enum.Enum):
    CREATE = 'Create'
    UPDATE = 'Update'
    DELETE = 'Delete'
    GENERIC = 'Generic'


class Event:
    kind: EventKind = None

    def __init_subclass__(cls, **kwargs):
        """Make subclasses available in the class namespace.
        Allows to use patterns like the following without having
        to import all the event classes.

        ```
        match type(event):
            case event.CreateEvent:
                pass
            case event.UpdateEvent:
                pass
        ```
        """
        setattr(Event, cls.__name__, cls)

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.obj!r}>'

    @property
    def objects(self):
        """All objects carried by this event."""
        return [self.obj]


@dataclasses.dataclass(repr=False)
class CreateEvent(Event):
    obj: object
    kind = EventKind.CREATE


@dataclasses.dataclass(repr=False)
class UpdateEvent(Event):
    old: object
    new: object
    kind = EventKind.UPDATE

    def __repr__(self):
        return f'<{self.__class__.__name__} {self.old!r} {self.new!r}>'

    @property
    def obj(self):
        return self.new

    @property
    def objects(self):
        return [o for o in (self.old, self.new) if o is not None]


@dataclasses.dataclass(repr=False)
class DeleteEvent(Event):
    obj: object
    kind = EventKind.DELETE


@dataclasses.dataclass(repr=False)
class GenericEvent(Event):
    obj: object
    kind = EventKind.GENERIC
