# flake8: noqa
import io
import warnings

import numpy as np
import pytest
from numpy.testing import assert_almost_equal

from simplenn.chain import LayerChain


def _dense_chain(seed=0):
    chain = LayerChain(seed=seed)
    chain.add_input(2)
    chain.add_full(3, act_fn="sigmoid")
    chain.add_full(1, act_fn="sigmoid")
    return chain


def _params(chain):
    return [{k: v.copy() for k, v in l.parameters.items()} for l in chain]


#######################################################################
#                             Contracts                               #
#######################################################################


def test_chain_construction_contracts():
    chain = LayerChain(seed=0)

    with pytest.raises(ValueError):
        chain.add_full(3)
    with pytest.raises(ValueError):
        chain.set_inputs([1.0])
    with pytest.raises(ValueError):
        chain.update(0.1)

    inp = chain.add_input(2)
    assert inp.lid == 0
    with pytest.raises(ValueError):
        chain.add_input(2)

    fc = chain.add_full(3)
    assert fc.lid == 1
    assert len(chain) == 2
    assert chain.head is inp and chain.tail is fc

    with pytest.raises(ValueError):
        chain.set_inputs([1.0, 2.0, 3.0])
    chain.set_inputs([1.0, 2.0])
    with pytest.raises(ValueError):
        chain.learn_outputs([1.0])
    print("PASSED")


def test_update_rejects_unknown_layer():
    chain = _dense_chain()
    chain.set_inputs([0.3, 0.9])
    chain.learn_outputs([0.6])
    before = _params(chain)

    for lid in [3, 4, -4]:
        with pytest.raises(ValueError):
            chain.update(0.5, lid=lid)

    # nothing was applied or cleared
    for p1, p2 in zip(before, _params(chain)):
        for k in p1:
            assert_almost_equal(p1[k], p2[k])
    assert np.any(chain.tail.u_weights != 0)
    assert np.any(chain[1].u_weights != 0)

    chain.update(0.5, lid=-3)
    assert np.any(chain.tail.u_weights != 0)
    print("PASSED")


def test_recurrent_input_window_warning():
    chain = LayerChain(seed=0)
    chain.add_input(4)
    with pytest.warns(UserWarning, match="window"):
        chain.add_recurrent(3, window=2)

    chain = LayerChain(seed=0)
    chain.add_input(4, window=3)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        chain.add_recurrent(3, window=2)
        chain.add_recurrent(2, window=2)
    print("PASSED")


def test_learn_outputs_sets_tail_errors():
    chain = _dense_chain()
    chain.set_inputs([0.2, 0.7])
    y = chain.get_outputs()
    chain.learn_outputs([0.25])

    assert_almost_equal(chain.tail.current_errors, y - 0.25)
    assert_almost_equal(chain.error_total(), (y[0] - 0.25) ** 2)
    print("PASSED")


def test_get_outputs_returns_a_copy():
    chain = _dense_chain()
    chain.set_inputs([0.2, 0.7])
    y = chain.get_outputs()
    y[:] = 100
    assert chain.get_outputs()[0] < 1
    print("PASSED")


#######################################################################
#                               Updates                               #
#######################################################################


def test_update_is_idempotent():
    chain = _dense_chain()
    chain.set_inputs([0.3, 0.9])
    chain.learn_outputs([0.6])

    before = _params(chain)
    chain.update(0.5)
    after = _params(chain)
    assert not np.allclose(before[-1]["weights"], after[-1]["weights"])

    for layer in chain:
        for acc in layer.updates.values():
            assert_almost_equal(acc, 0)

    chain.update(0.5)
    for p1, p2 in zip(after, _params(chain)):
        for k in p1:
            assert_almost_equal(p1[k], p2[k])
    print("PASSED")


def test_gradients_are_summed():
    single = _dense_chain(seed=4)
    single.set_inputs([0.1, 0.8])
    single.learn_outputs([0.9])

    double = _dense_chain(seed=4)
    for _ in range(2):
        double.set_inputs([0.1, 0.8])
        double.learn_outputs([0.9])

    for l1, l2 in zip(single, double):
        for k in l1.updates:
            assert_almost_equal(2 * l1.updates[k], l2.updates[k])
    print("PASSED")


def test_update_from_intermediate_layer():
    chain = _dense_chain()
    chain.set_inputs([0.3, 0.9])
    chain.learn_outputs([0.6])

    before = _params(chain)
    chain.update(0.5, lid=1)
    after = _params(chain)

    assert not np.allclose(before[1]["weights"], after[1]["weights"])
    assert_almost_equal(before[2]["weights"], after[2]["weights"])
    assert np.any(chain.tail.u_weights != 0)
    print("PASSED")


def test_identical_seeds_give_identical_trajectories():
    rng = np.random.default_rng(0)
    X = rng.random((50, 2))

    chains = [_dense_chain(seed=9), _dense_chain(seed=9)]
    for chain in chains:
        for x in X:
            chain.set_inputs(x)
            chain.learn_outputs([abs(x[0] - x[1])])
            chain.update(1.0)

    for p1, p2 in zip(_params(chains[0]), _params(chains[1])):
        for k in p1:
            assert_almost_equal(p1[k], p2[k])
    print("PASSED")


def test_dense_network_learns():
    from simplenn.trainers import DenseTrainer

    trainer = DenseTrainer(seed=0)
    before = trainer.evaluate()
    errors = trainer.train(n_steps=10000, verbose=False)
    after = trainer.evaluate()

    assert len(errors) == 10000
    assert len(trainer.errors["error"]) == 10
    assert after < 0.8 * before
    print("PASSED")


#######################################################################
#                         Dump & Teardown                             #
#######################################################################


def test_dump_and_summary():
    chain = LayerChain(seed=0)
    chain.add_input(1, 4, 4)
    chain.add_conv(2, 2, 2, 3, padding=1, stride=2)
    chain.add_full(3)
    chain.set_inputs(np.linspace(0, 1, 16))

    fp = io.StringIO()
    chain.dump(fp)
    out = fp.getvalue()
    assert "Layer0 Input" in out
    assert "Layer1 (<- Layer0) Conv2D" in out
    assert "Layer2 (<- Layer1) FullyConnected" in out
    assert "kernel_size=3, padding=1, stride=2" in out

    summ = chain.summary()
    assert [s["layer"] for s in summ] == ["Input", "Conv2D", "FullyConnected"]
    assert summ[1]["hyperparameters"]["stride"] == 2
    assert chain.hyperparameters["n_layers"] == 3
    print("PASSED")


def test_close_releases_layers():
    with LayerChain(seed=0) as chain:
        chain.add_input(2)
        fc = chain.add_full(2)
        chain.set_inputs([0.5, 0.5])

    assert len(chain) == 0
    assert fc.outputs.size == 0
    assert fc.parameters == {}
    with pytest.raises(ValueError):
        chain.get_outputs()
    print("PASSED")
