import math

import numpy as np
import pytest

import corowfsc

parse = corowfsc.config.ModelParameters.from_yaml


def test_basic_parse():
    result = parse("""
        a: 5
        b: Hi
        c:
            field: false
    """)

    assert result.a == 5
    assert result.b == "Hi"
    assert not result.c.field

    assert isinstance(result, corowfsc.config.ModelParameters)
    assert isinstance(result.c, corowfsc.config.Object)


def test_nested_planes_are_kept():
    result = parse("""
        P1:
            D: 2.4
            compact:
                Nbeam: 32
        dm1:
            Nact: 12
    """)

    assert result.P1.D == 2.4
    assert result.P1.compact.Nbeam == 32
    assert result.dm1.Nact == 12
    # Records not mentioned in the file still exist
    assert isinstance(result.P1.full, corowfsc.config.Object)
    assert isinstance(result.dm2.compact, corowfsc.config.Object)
    assert isinstance(result.est, corowfsc.config.Object)


def test_probe():
    result = parse("""
        est:
            probe: !Probe
                Npairs: 4
                extra_field: Extra
    """)

    probe = result.est.probe
    assert isinstance(probe, corowfsc.config.Probe)
    assert probe.Npairs == 4
    assert probe.radius == 12
    assert probe.whichDM == 1
    assert probe.extra_field == "Extra"


def test_basic_eval():
    result = parse("""
        expr: !eval 2+2
        not_expr: 2+2
    """)

    assert isinstance(result.data['expr'], corowfsc.config.Eval)
    assert result.expr == 4

    assert isinstance(result.data['not_expr'], str)
    assert result.not_expr == "2+2"


def test_numpy_and_math_eval():
    result = parse("""
        mat: !eval np.ones([2, 2])
        val: !eval math.sin(math.pi)
        cls: !eval corowfsc.config.Probe
    """)

    assert np.array_equal(result.mat, np.ones([2, 2]))
    assert result.val == math.sin(math.pi)
    assert result.cls is corowfsc.config.Probe


def test_dependency():
    result = parse("""
        a: !eval 2+2
        b: !eval mp.a * 3
        c: !eval mp.a + mp.b
        dm2:
            Nact: !eval mp.dm1.Nact
        dm1:
            Nact: 48
    """)

    # testing in reverse order on purpose
    assert result.c == 16
    assert result.b == 12
    assert result.a == 4
    assert result.dm2.Nact == 48


def test_circular_dependency():
    result = parse("""
        a: !eval mp.b
        b: !eval mp.a
    """)

    with pytest.raises(ValueError):
        result.a


def test_empty_and_non_mapping_documents():
    assert isinstance(parse(""), corowfsc.config.ModelParameters)
    with pytest.raises(ValueError):
        parse("- 1\n- 2\n")


def test_from_yaml_file(tmp_path):
    fn = tmp_path / 'mp.yaml'
    fn.write_text("lambda0: 5.5e-7\nNsbp: !eval 1 + 2\n")

    mp = corowfsc.config.ModelParameters.from_yaml_file(str(fn))
    assert mp.lambda0 == 5.5e-7
    assert mp.Nsbp == 3


if __name__ == '__main__':
    test_basic_parse()
    test_probe()
    test_basic_eval()
    test_dependency()
