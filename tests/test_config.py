"""Tests for search configurations and option files."""

import logging

import pytest

from popcal.config import (
    SECTIONS,
    BFGSConfig,
    HookeConfig,
    WolfeBFGSConfig,
    parse_optinfo,
    read_optinfo,
)
from popcal.optimize.hooke import DEFAULT_SEED

OPTINFO = """\
; optimisation settings
seed 1234
[hooke]
rho      0.6        ; slower shrinking
lambda   0.2
hookeeps 1e-5
itermax  2e3
[BFGS]
// tuned for the growth model
beta     0.4
st       0.5
maxiter  500
bfgseps  1e-3
[bfgs-wolfe]
sigma    0.8
bfgsiter 200
"""


def test_defaults():
    assert HookeConfig() == HookeConfig(rho=0.5, lambda_=0.0, epsilon=1e-4, itermax=1000, seed=None)
    assert BFGSConfig().gradstep == 0.5
    assert WolfeBFGSConfig().sigma == 0.9


def test_from_options_aliases_and_case():
    config = HookeConfig.from_options({"RHO": "0.7", "Lambda": 0.1, "maxiter": "50"})
    assert config.rho == 0.7
    assert config.lambda_ == 0.1
    assert config.itermax == 50
    assert isinstance(config.itermax, int)


def test_from_options_ignores_unknown_keys():
    config = BFGSConfig.from_options({"beta": 0.2, "warp_factor": 9})
    assert config == BFGSConfig(beta=0.2)


def test_from_options_invalid_values():
    with pytest.raises(ValueError):
        HookeConfig.from_options({"itermax": "10.5"})
    with pytest.raises(ValueError):
        BFGSConfig.from_options({"beta": "fast"})


def test_validation():
    with pytest.raises(ValueError):
        HookeConfig(rho=1.5)
    with pytest.raises(ValueError):
        HookeConfig(epsilon=0.0)
    with pytest.raises(ValueError):
        BFGSConfig(gradstep=1.0)
    with pytest.raises(ValueError):
        BFGSConfig(bfgsiter=0)
    with pytest.raises(ValueError):
        WolfeBFGSConfig(rho=0.95)
    with pytest.raises(ValueError):
        WolfeBFGSConfig(tau=0.5)


def test_hooke_search_kwargs_default_seed():
    assert HookeConfig().search_kwargs()["seed"] == DEFAULT_SEED


def test_search_kwargs_match_field_names():
    kwargs = HookeConfig(seed=3).search_kwargs()
    assert kwargs == {"rho": 0.5, "lambda_": 0.0, "epsilon": 1e-4, "itermax": 1000, "seed": 3}
    assert "bfgseps" in BFGSConfig().search_kwargs()
    assert "eps" in WolfeBFGSConfig().search_kwargs()


def test_parse_optinfo():
    info = parse_optinfo(OPTINFO)
    assert info.seed == 1234
    hooke, armijo, wolfe = info.searches
    assert hooke == HookeConfig(rho=0.6, lambda_=0.2, epsilon=1e-5, itermax=2000, seed=1234)
    assert armijo == BFGSConfig(beta=0.4, step=0.5, bfgsiter=500, bfgseps=1e-3)
    assert wolfe == WolfeBFGSConfig(sigma=0.8, maxiter=200)


def test_parse_optinfo_section_seed_wins():
    info = parse_optinfo("seed 1\n[hooke]\nseed 5\n")
    assert info.searches[0].seed == 5


def test_parse_optinfo_repeated_sections_run_in_order():
    info = parse_optinfo("[hooke]\n[bfgs]\n[hooke]\nepsilon 1e-6\n")
    assert [type(c) for c in info.searches] == [HookeConfig, BFGSConfig, HookeConfig]
    assert info.searches[2].epsilon == 1e-6


def test_parse_optinfo_skips_unknown_sections(caplog):
    logger = logging.getLogger("popcal.config")
    logger.addHandler(caplog.handler)
    try:
        info = parse_optinfo("[simann]\ntemperature 3\nlisted values 1 2\n[hooke]\nrho 0.6\n")
    finally:
        logger.removeHandler(caplog.handler)
    assert info.searches == [HookeConfig(rho=0.6)]
    assert "Unknown optimisation section [simann]" in caplog.text


def test_parse_optinfo_errors():
    with pytest.raises(ValueError, match="key value"):
        parse_optinfo("[hooke]\nrho\n")
    with pytest.raises(ValueError):
        parse_optinfo("[hooke]\nrho 2.0\n")


def test_parse_optinfo_empty():
    info = parse_optinfo("; nothing here\n\n")
    assert info.seed is None
    assert info.searches == []


def test_read_optinfo(tmp_path):
    path = tmp_path / "optinfo.txt"
    path.write_text(OPTINFO, encoding="utf-8")
    assert read_optinfo(path) == parse_optinfo(OPTINFO)


def test_sections_registry():
    assert SECTIONS == {"hooke": HookeConfig, "bfgs": BFGSConfig, "bfgs-wolfe": WolfeBFGSConfig}
