from abc import ABC, abstractmethod
from typing import Callable, Generic, Iterable, Optional, TypeVar

T = TypeVar('T')
U = TypeVar('U')
E = TypeVar('E')


class Maybe(Generic[T], ABC):

    @abstractmethod
    def map(self, f: Callable[[T], U]) -> 'Maybe[U]':
        pass

    @abstractmethod
    def bind(self, f: Callable[[T], 'Maybe[U]']) -> 'Maybe[U]':
        pass

    @abstractmethod
    def get_or_else(self, default: T) -> T:
        pass

    @abstractmethod
    def is_some(self) -> bool:
        pass

    def is_none(self) -> bool:
        return not self.is_some()

    @staticmethod
    def of(value: Optional[T]) -> 'Maybe[T]':
        return Nothing() if value is None else Some(value)


class Some(Maybe[T]):

    def __init__(self, value: T):
        self._value = value

    def map(self, f):
        return Some(f(self._value))

    def bind(self, f):
        return f(self._value)

    def get_or_else(self, default):
        return self._value

    def is_some(self) -> bool:
        return True

    def __repr__(self) -> str:
        return f"Some({self._value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Some) and self._value == other._value


class Nothing(Maybe[T]):

    def map(self, f):
        return Nothing()

    def bind(self, f):
        return Nothing()

    def get_or_else(self, default):
        return default

    def is_some(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "Nothing()"

    def __eq__(self, other) -> bool:
        return isinstance(other, Nothing)


class Either(Generic[E, T], ABC):

    @abstractmethod
    def map(self, f: Callable[[T], U]) -> 'Either[E, U]':
        pass

    @abstractmethod
    def bind(self, f: Callable[[T], 'Either[E, U]']) -> 'Either[E, U]':
        pass

    @abstractmethod
    def get_or_else(self, default: T) -> T:
        pass

    @abstractmethod
    def is_right(self) -> bool:
        pass

    def is_left(self) -> bool:
        return not self.is_right()

    @abstractmethod
    def get_error(self) -> E:
        pass


class Right(Either[E, T]):

    def __init__(self, value: T):
        self._value = value

    def map(self, f):
        return Right(f(self._value))

    def bind(self, f):
        return f(self._value)

    def get_or_else(self, default):
        return self._value

    def is_right(self) -> bool:
        return True

    def get_error(self):
        raise ValueError("Cannot get error from Right")

    def __repr__(self) -> str:
        return f"Right({self._value!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Right) and self._value == other._value


class Left(Either[E, T]):

    def __init__(self, error: E):
        self._error = error

    def map(self, f):
        return Left(self._error)

    def bind(self, f):
        return Left(self._error)

    def get_or_else(self, default):
        return default

    def is_right(self) -> bool:
        return False

    def get_error(self):
        return self._error

    def __repr__(self) -> str:
        return f"Left({self._error!r})"

    def __eq__(self, other) -> bool:
        return isinstance(other, Left) and self._error == other._error


def first(items: Iterable[T], pred: Callable[[T], bool]) -> Maybe[T]:
    for item in items:
        if pred(item):
            return Some(item)
    return Nothing()


def compose(*funcs):
    """Return the right-to-left composition of ``funcs``.

    compose(f, g, h)(x) == f(g(h(x)))
    """
    def _composed(x):
        res = x
        for f in reversed(funcs):
            res = f(res)
        return res
    return _composed


def pipe(x, *funcs):
    """pipe(x, f, g, h) == h(g(f(x)))"""
    res = x
    for f in funcs:
        res = f(res)
    return res
