import deepmerge

from corowfsc.config.Eval import Eval


def _fill_record(merger, path, base, nxt):
    """Add the fields of record `nxt` that record `base` is missing."""
    merger.merge(base._fields(), nxt._fields())
    return base


class Object:
    """
    Record with attribute access backed by a dictionary.

    Fields are reachable as `obj.field` or `obj['field']`. `Eval` values are
    evaluated on access. Subclasses declare defaults by assigning attributes
    before calling `super().__init__(**kwargs)`; keyword arguments win over
    those defaults.

    A frozen record (see `freeze`) rejects assignment. The WFSC loop freezes
    the model parameters so that worker threads can share them.
    """

    def __init__(self, **kwargs):
        defaults = self.__dict__.get('data', {})
        data = _defaults_merger.merge(dict(kwargs), defaults)
        self.__dict__['data'] = data
        self.__dict__['_frozen'] = False

    def _fields(self):
        return self.__dict__.setdefault('data', {})

    def merge(self, **kwargs):
        """Deep-merge keyword arguments into this record."""
        self._check_mutable(next(iter(kwargs), ''))
        deepmerge.always_merger.merge(self._fields(), kwargs)

    def __getattr__(self, item):
        # Only called when normal lookup fails, i.e. for every field.
        if item == 'data':
            return self._fields()
        if item.startswith('__') and item.endswith('__'):
            raise AttributeError(item)

        data = self._fields()
        if item not in data:
            raise AttributeError(item)

        value = data[item]
        if isinstance(value, Eval):
            return value.evaluate()
        return value

    def __setattr__(self, key, value):
        self._check_mutable(key)
        self._fields()[key] = value

    def __delattr__(self, key):
        self._check_mutable(key)
        try:
            del self._fields()[key]
        except KeyError:
            raise AttributeError(key) from None

    def __getitem__(self, item):
        try:
            return self.__getattr__(item)
        except AttributeError:
            raise KeyError(item) from None

    def __setitem__(self, key, value):
        self.__setattr__(key, value)

    def __contains__(self, item):
        return item in self._fields()

    def __eq__(self, other):
        if not isinstance(other, Object):
            return False
        return self.data == other.data

    def __repr__(self):
        return '%s(%s)' % (type(self).__name__,
                           ', '.join(sorted(self._fields().keys())))

    def _check_mutable(self, key):
        if self.__dict__.get('_frozen', False):
            raise AttributeError("Cannot set '%s': %s is frozen." %
                                 (key, type(self).__name__))

    def get(self, key, default=None):
        """Return the field value, or `default` if the field is absent."""
        if key in self._fields():
            return self.__getattr__(key)
        return default

    def keys(self):
        return self._fields().keys()

    @property
    def frozen(self):
        return self.__dict__.get('_frozen', False)

    def freeze(self):
        """Make this record and every nested record read-only."""
        self.__dict__['_frozen'] = True
        for value in self._fields().values():
            if isinstance(value, Object):
                value.freeze()
        return self

    def thaw(self):
        """Undo `freeze` on this record and every nested record."""
        self.__dict__['_frozen'] = False
        for value in self._fields().values():
            if isinstance(value, Object):
                value.thaw()
        return self


# Keyword arguments win. A record given as a keyword argument keeps the
# default fields it does not set, so a partial record from a config file
# still has every nested record.
_defaults_merger = deepmerge.Merger(
    [(dict, ['merge']), (Object, _fill_record)],
    ['use_existing'],
    ['use_existing'],
)
