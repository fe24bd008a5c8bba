"""
Logging of the fixtures' steps, prefixed with the rollout they are about.

Every fixture session logs via its own object logger (an adapter), which
carries a reference to the rollout in the log records. The formatters render
it either as a ``[namespace/name]`` prefix (text) or as a field (JSON).
"""
import copy
import enum
import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping, MutableMapping, Optional, TextIO, Tuple

from pythonjsonlogger.core import RESERVED_ATTRS
from pythonjsonlogger.json import JsonFormatter

from rollfix._cogs.helpers import typedefs
from rollfix._cogs.structs import references

logger = logging.getLogger('rollfix.fixtures')

# The attribute of the log records with the rollout's reference (if any).
REF_ATTR = 'rollout_ref'

# A key for object references in JSON logs, as seen by the log parsers.
DEFAULT_JSON_REFKEY = 'object'

# The lowest levels of the severities, checked in order; the rest is "fatal".
SEVERITIES = [
    (logging.DEBUG, 'debug'),
    (logging.INFO, 'info'),
    (logging.WARNING, 'warn'),
    (logging.ERROR, 'error'),
]


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = '-json-'  # not used for formatting, only for detection


def get_ref(record: logging.LogRecord) -> Optional[Mapping[str, Any]]:
    return getattr(record, REF_ATTR, None)


def get_severity(levelno: int) -> str:
    for threshold, severity in SEVERITIES:
        if levelno <= threshold:
            return severity
    return 'fatal'


class ObjectFormatter(logging.Formatter):
    pass


class ObjectTextFormatter(ObjectFormatter, logging.Formatter):
    pass


class ObjectJsonFormatter(ObjectFormatter, JsonFormatter):
    """
    JSON lines with the rollout's reference as a field, never as a prefix.
    """

    def __init__(self, *args: Any, refkey: Optional[str] = None, **kwargs: Any) -> None:
        kwargs['reserved_attrs'] = set(kwargs.get('reserved_attrs', RESERVED_ATTRS)) | {REF_ATTR}
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self.refkey: str = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_record: Dict[str, Any],
            record: logging.LogRecord,
            message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        ref = get_ref(record)
        if ref is not None:
            log_record[self.refkey] = ref
        log_record.setdefault('severity', get_severity(record.levelno))


class ObjectPrefixingMixin(ObjectFormatter):
    def format(self, record: logging.LogRecord) -> str:
        ref = get_ref(record)
        if ref is not None:
            name = ref.get('name', '')
            namespace = ref.get('namespace')
            record = copy.copy(record)  # shallow, the original goes to other handlers.
            record.msg = f"[{namespace}/{name}] {record.msg}" if namespace else f"[{name}] {record.msg}"
        return super().format(record)


class ObjectPrefixingTextFormatter(ObjectPrefixingMixin, ObjectTextFormatter):
    pass


class ObjectPrefixingJsonFormatter(ObjectPrefixingMixin, ObjectJsonFormatter):
    pass


class ObjectLogger(typedefs.LoggerAdapter):
    """
    A logger/adapter to carry the rollout's identifiers for formatting.

    Constructed for every fixture session once the rollout is known;
    the sessions without a rollout log via the plain fixtures' logger.
    """

    def __init__(self, *, ref: references.ObjectRef, resource: references.Resource) -> None:
        super().__init__(logger, {
            REF_ATTR: {
                'apiVersion': resource.api_version,
                'kind': resource.kind,
                'name': ref.name,
                'namespace': ref.namespace,
            },
        })

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> Tuple[str, MutableMapping[str, Any]]:
        # The call's own extras are kept, the rollout's reference is added to them.
        kwargs['extra'] = {**(self.extra or {}), **kwargs.get('extra', {})}
        return msg, kwargs


# Only our own handlers are replaced on re-configuration, e.g. in the repeated CLI invocations.
if TYPE_CHECKING:
    class _RollfixStreamHandler(logging.StreamHandler[TextIO]):
        pass
else:
    class _RollfixStreamHandler(logging.StreamHandler):
        pass


def configure(
        debug: Optional[bool] = None,
        verbose: Optional[bool] = None,
        quiet: Optional[bool] = None,
        log_format: LogFormat = LogFormat.FULL,
        log_prefix: Optional[bool] = False,
        log_refkey: Optional[str] = None,
) -> None:
    """
    Set up the root logger for the fixtures' output: in the CLI, or in the tests.

    The API clients are silenced unless in the debug mode: only the steps
    of the fixtures are logged, with their outcomes.
    """
    handler = _RollfixStreamHandler()
    handler.setFormatter(make_formatter(log_format=log_format,
                                        log_prefix=log_prefix,
                                        log_refkey=log_refkey))

    root = logging.getLogger()
    root.handlers[:] = [h for h in root.handlers if not isinstance(h, _RollfixStreamHandler)]
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug or verbose else logging.WARNING if quiet else logging.INFO)

    for name in ['asyncio', 'rollfix._cogs']:
        noisy = logging.getLogger(name)
        noisy.propagate = bool(debug)
        if not debug:
            noisy.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: LogFormat = LogFormat.FULL,
        log_prefix: Optional[bool] = False,
        log_refkey: Optional[str] = None,
) -> ObjectFormatter:
    # By default, the prefixes are for humans only; the JSON logs have the reference as a field.
    prefixed = log_prefix if log_prefix is not None else log_format is not LogFormat.JSON
    match log_format:
        case LogFormat.JSON:
            cls = ObjectPrefixingJsonFormatter if prefixed else ObjectJsonFormatter
            return cls(refkey=log_refkey)
        case LogFormat() | str():
            fmt = log_format.value if isinstance(log_format, LogFormat) else log_format
            return (ObjectPrefixingTextFormatter if prefixed else ObjectTextFormatter)(fmt)
        case _:
            raise ValueError(f"Unsupported log format: {log_format!r}")
