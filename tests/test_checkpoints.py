from architectures.model_setup import setup, reset_classifier
from architectures.wrn_prm import create_model
from train import checkpoints
from utils.opts import Options
import os
import pytest
import torch
import torch.nn as nn


def small_options(**kwargs):
    kwargs.setdefault('dataset', 'cifar10')
    kwargs.setdefault('depth', 10)
    kwargs.setdefault('widen_factor', 1)
    return Options(**kwargs)


def test_latest_without_resume():
    assert checkpoints.latest(small_options()) == (None, None)


def test_latest_missing_directory(tmp_path):
    opt = small_options(resume=str(tmp_path / "nothing"))
    assert checkpoints.latest(opt) == (None, None)


def test_save_and_resume(tmp_path):
    opt = small_options(save=str(tmp_path))
    model, _ = setup(opt)
    optimizer = torch.optim.SGD(model.parameters(), lr=0.1, momentum=0.9)

    checkpoints.save(3, model, optimizer, True, opt)
    for name in ('model_3.pth', 'optimState_3.pth', 'latest.pth', 'model_best.pth'):
        assert os.path.exists(tmp_path / name)

    resume_opt = small_options(resume=str(tmp_path))
    checkpoint, optim_state = checkpoints.latest(resume_opt)
    assert checkpoint['epoch'] == 3
    assert checkpoint['model_file'].endswith('model_3.pth')
    assert 'param_groups' in optim_state

    restored, criterion = setup(resume_opt, checkpoint)
    assert isinstance(criterion, nn.CrossEntropyLoss)
    for (k, v), (k2, v2) in zip(model.state_dict().items(), restored.state_dict().items()):
        assert k == k2
        assert torch.equal(v.cpu(), v2.cpu())


def test_not_best_skips_best_file(tmp_path):
    opt = small_options(save=str(tmp_path))
    model = create_model(opt)
    optimizer = torch.optim.SGD(model.parameters(), lr=0.1)
    checkpoints.save(1, model, optimizer, False, opt)
    assert not os.path.exists(tmp_path / 'model_best.pth')


def test_reset_classifier():
    opt = small_options(reset_classifier=True, n_classes=5)
    model, _ = setup(opt)
    model.eval()
    with torch.no_grad():
        y = model(torch.randn(2, 3, 32, 32).to(next(model.parameters()).device))
    assert y.shape == (2, 5)


def test_retrain_then_reset(tmp_path):
    base = create_model(small_options())
    path = tmp_path / 'pretrained.pth'
    torch.save(base.state_dict(), path)

    opt = small_options(retrain=str(path), reset_classifier=True, n_classes=3)
    model, _ = setup(opt)
    stem = model.layers['0'].weight.detach().cpu()
    assert torch.equal(stem, base.layers['0'].weight.detach())
    assert model.graph.nodes[model.graph.output_node].params['out_features'] == 3


def test_reset_classifier_requires_linear_output():
    model = create_model(small_options())
    model.graph.output_node = 0
    with pytest.raises(ValueError):
        reset_classifier(model, 4)
