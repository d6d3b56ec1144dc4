"""Map raised exceptions to failure severities."""

from collections.abc import Iterable, Mapping

from breakwater.circuit_breaker.outcome import CallResult

ClassificationEntries = tuple[tuple[type[BaseException], CallResult], ...]


def build_classification(
    hard_types: Iterable[type[BaseException]],
    soft_types: Iterable[type[BaseException]],
) -> ClassificationEntries:
    """Build ordered ``(exception type, severity)`` entries.

    Hard failure types are inserted first. A soft failure type already listed
    as hard keeps its hard severity.
    """
    entries: dict[type[BaseException], CallResult] = {}
    for exc_type in hard_types:
        entries[exc_type] = CallResult.HARD_FAILURE
    for exc_type in soft_types:
        entries.setdefault(exc_type, CallResult.SOFT_FAILURE)
    return tuple(entries.items())


class FailureClassifier:
    """Resolve exceptions to a severity using first-match ancestor lookup."""

    def __init__(self, entries: Iterable[tuple[type[BaseException], CallResult]]) -> None:
        self._entries: ClassificationEntries = tuple(entries)
        self._resolved: dict[type[BaseException], CallResult | None] = {}

    @classmethod
    def from_types(
        cls,
        hard_types: Iterable[type[BaseException]] = (),
        soft_types: Iterable[type[BaseException]] = (Exception,),
    ) -> "FailureClassifier":
        return cls(build_classification(hard_types, soft_types))

    @classmethod
    def from_mapping(
        cls, mapping: Mapping[type[BaseException], CallResult | str]
    ) -> "FailureClassifier":
        """Build a classifier from an explicit mapping, keeping its order."""
        entries: list[tuple[type[BaseException], CallResult]] = []
        for exc_type, tag in mapping.items():
            try:
                severity = CallResult(tag)
            except ValueError as error:
                raise ValueError(f"unknown failure severity: {tag!r}") from error
            if severity == CallResult.OK:
                raise ValueError(f"{exc_type.__name__} cannot be classified as ok")
            entries.append((exc_type, severity))
        return cls(entries)

    @property
    def entries(self) -> ClassificationEntries:
        return self._entries

    def classify(self, error: BaseException) -> CallResult | None:
        """Return the severity for ``error`` or ``None`` when it is unhandled."""
        error_type = type(error)
        try:
            return self._resolved[error_type]
        except KeyError:
            pass
        severity = None
        for exc_type, tag in self._entries:
            if issubclass(error_type, exc_type):
                severity = tag
                break
        self._resolved[error_type] = severity
        return severity
