# tests/test_wrn_prm.py
from architectures.wrn_prm import (
    IMAGENET_CFG, blocks_per_stage, build_graph, create_model,
    input_resolution, num_classes, stage_widths,
)
from architectures.compiler import CompiledModel
from utils.opts import Options
from utils.logger import get_logger
import pytest
import torch
import torch.nn as nn

logger = get_logger("test_wrn_prm", logfile="test_wrn_prm.log")


def block_merges(graph):
    """Ids of the per-block merge nodes (the pyramid sums have four parents)."""
    return [n for n in graph.find_nodes('add') if len(graph.nodes[n].parents) == 3]


def test_imagenet_table():
    assert blocks_per_stage('imagenet', 18) == [2, 2, 2, 2]
    assert blocks_per_stage('imagenet', 34) == [3, 4, 6, 3]
    assert set(IMAGENET_CFG) == {18, 34}


def test_imagenet_invalid_depth():
    with pytest.raises(ValueError, match="Invalid depth: 50"):
        blocks_per_stage('imagenet', 50)


@pytest.mark.parametrize("depth, n", [(4, 0), (10, 1), (16, 2), (28, 4), (40, 6)])
def test_cifar_blocks_from_depth(depth, n):
    assert blocks_per_stage('cifar10', depth) == [n, n, n]
    assert blocks_per_stage('cifar100', depth) == [n, n, n]


@pytest.mark.parametrize("depth", [11, 18, 30])
def test_cifar_depth_must_be_6n_plus_4(depth):
    with pytest.raises(ValueError, match="6n\\+4"):
        blocks_per_stage('cifar10', depth)


@pytest.mark.parametrize("depth", [-8, -2])
def test_cifar_depth_below_minimum(depth):
    with pytest.raises(ValueError, match="at least 4"):
        blocks_per_stage('cifar10', depth)


def test_cifar_depth_4_builds_one_block_per_stage():
    model = create_model(Options(dataset='cifar10', depth=4, widen_factor=1))
    assert len(block_merges(model.graph)) == 3
    model.eval()
    with torch.no_grad():
        y = model(torch.randn(2, 3, 32, 32))
    assert y.shape == (2, 10)


def test_invalid_dataset():
    with pytest.raises(ValueError, match="invalid dataset: mnist"):
        blocks_per_stage('mnist', 16)
    with pytest.raises(ValueError):
        num_classes('svhn')


def test_stage_widths_and_dataset_constants():
    assert stage_widths('imagenet', 2) == [64, 128, 256, 512, 1024]
    assert stage_widths('cifar10', 10) == [16, 160, 320, 640]
    assert num_classes('imagenet') == 1000
    assert num_classes('cifar10') == 10
    assert num_classes('cifar100') == 100
    assert input_resolution('imagenet') == 224
    assert input_resolution('cifar100') == 32


def test_cifar_graph_structure():
    opt = Options(dataset='cifar10', depth=16, widen_factor=2)
    g = build_graph(opt)
    merges = block_merges(g)
    assert len(merges) == 6

    out = g.nodes[g.output_node]
    assert out.op_type == 'linear'
    assert out.params == {'in_features': 128, 'out_features': 10}

    # every block output carries the width of its stage
    widths = [g.nodes[g.nodes[m].parents[0]].out_channels for m in merges]
    assert widths == [32, 32, 64, 64, 128, 128]

    pool = g.find_nodes('avgpool')
    assert len(pool) == 1
    assert g.nodes[pool[0]].params['kernel'] == 8


def test_cifar_upsample_resolutions_track_strides():
    g = build_graph(Options(dataset='cifar10', depth=16, widen_factor=1))
    sizes = [g.nodes[u].params['size'] for u in g.find_nodes('upsample')]
    # 4 scales per block; blocks see 32, 32, 32, 16, 16, 8
    assert sizes == [32] * 12 + [16] * 8 + [8] * 4


@pytest.mark.parametrize("dataset, classes", [('cifar10', 10), ('cifar100', 100)])
def test_cifar_forward(dataset, classes):
    model = create_model(Options(dataset=dataset, depth=10, widen_factor=1))
    assert isinstance(model, CompiledModel)
    model.eval()
    with torch.no_grad():
        y = model(torch.randn(2, 3, 32, 32))
    assert y.shape == (2, classes)


def test_cifar_training_step():
    model = create_model(Options(dataset='cifar10', depth=10, widen_factor=1, dropout=0.3))
    model.train()
    y = model(torch.randn(4, 3, 32, 32))
    loss = nn.CrossEntropyLoss()(y, torch.tensor([0, 1, 2, 3]))
    loss.backward()
    stem = model.layers['0']
    assert stem.weight.grad is not None
    assert torch.isfinite(stem.weight.grad).all()


def test_dropout_in_every_block():
    g = build_graph(Options(dataset='cifar10', depth=16, widen_factor=1, dropout=0.3))
    assert len(g.find_nodes('dropout')) == 6


def test_imagenet_graph_structure():
    g = build_graph(Options(dataset='imagenet', depth=34, widen_factor=1))
    assert len(block_merges(g)) == sum(IMAGENET_CFG[34])
    out = g.nodes[g.output_node]
    assert out.params == {'in_features': 512, 'out_features': 1000}
    stem = g.nodes[0]
    assert stem.params['kernel'] == 7 and stem.params['stride'] == 2
    assert len(g.find_nodes('maxpool')) == 1
    pool = g.find_nodes('avgpool')[0]
    assert g.nodes[pool].params['kernel'] == 7


def test_imagenet_forward():
    model = create_model(Options(dataset='imagenet', depth=18, widen_factor=1)).eval()
    with torch.no_grad():
        y = model(torch.randn(1, 3, 224, 224))
    logger.info("ImageNet output shape: %s", tuple(y.shape))
    assert y.shape == (1, 1000)


def test_n_classes_override():
    model = create_model(Options(dataset='cifar10', depth=10, widen_factor=1), n_classes=7).eval()
    with torch.no_grad():
        y = model(torch.randn(2, 3, 32, 32))
    assert y.shape == (2, 7)
