import yaml

from corowfsc.config.Eval import Eval
from corowfsc.config.Object import Object


def load_from_str(yaml_str, eval_globals, eval_locals, ctors_dict):
    """
    Load a YAML document into the fields of a config `Object`.

    Every mapping becomes an `Object`, and `!eval` scalars become lazy `Eval`
    expressions.

    :param yaml_str: a YAML string
    :param eval_globals: globals exposed to `!eval` code, in a dictionary
    :param eval_locals: locals exposed to `!eval` code, in a dictionary
    :param ctors_dict: extra tag constructors, e.g.
        `{'!Probe': object_constructor(Probe)}`
    :return: the dictionary of top-level fields
    """
    loader_cls = _get_loader(eval_globals, eval_locals, ctors_dict)
    result_obj = yaml.load(yaml_str, Loader=loader_cls)
    if result_obj is None:
        return {}
    if not isinstance(result_obj, Object):
        raise ValueError('Top level of a parameter file must be a mapping, '
                         'found %s.' % type(result_obj).__name__)
    return dict(result_obj.data)


def object_constructor(kwarg_constructor):
    """
    Make a YAML mapping constructor from a class taking keyword arguments.

    :param kwarg_constructor: callable accepting the mapping as keywords
    """
    def _result(loader, node):
        return kwarg_constructor(**loader.construct_mapping(node, deep=True))
    return _result


def _eval_constructor(eval_globals, eval_locals):
    def _result(loader, node):
        s = loader.construct_scalar(node)
        if not isinstance(s, str):
            raise ValueError("Cannot eval anything other than a string. "
                             "Found type %s: %s" % (type(s), s))
        return Eval(eval_globals, eval_locals, s)
    return _result


def _get_loader(eval_globals, eval_locals, ctors_dict):
    """Build a SafeLoader subclass carrying the config constructors."""

    class _ConfigLoader(yaml.SafeLoader):
        pass

    _ConfigLoader.add_constructor(u'tag:yaml.org,2002:map',
                                  object_constructor(Object))
    _ConfigLoader.add_constructor(u'!eval',
                                  _eval_constructor(eval_globals, eval_locals))
    for tag, ctor in ctors_dict.items():
        _ConfigLoader.add_constructor(tag, ctor)
    return _ConfigLoader
