# architectures/initialization.py
import math

import torch
import torch.nn as nn
from utils.logger import get_logger

logger = get_logger("initialization", logfile="initialization.log")


def conv_init(model: nn.Module):
    """
    Fan-out scaled normal init: weight ~ N(0, sqrt(2 / (kH * kW * out_channels))).
    """
    count = 0
    with torch.no_grad():
        for m in model.modules():
            if isinstance(m, nn.Conv2d):
                kh, kw = m.kernel_size
                n = kh * kw * m.out_channels
                m.weight.normal_(0, math.sqrt(2.0 / n))
                if m.bias is not None:
                    m.bias.zero_()
                count += 1
    logger.debug("Initialized %d conv layers", count)
    return model


def bn_init(model: nn.Module):
    count = 0
    with torch.no_grad():
        for m in model.modules():
            if isinstance(m, nn.BatchNorm2d):
                m.weight.fill_(1)
                m.bias.zero_()
                count += 1
    logger.debug("Initialized %d batch-norm layers", count)
    return model


def linear_init(model: nn.Module):
    count = 0
    with torch.no_grad():
        for m in model.modules():
            if isinstance(m, nn.Linear):
                m.bias.zero_()
                count += 1
    logger.debug("Initialized %d linear layers", count)
    return model


def initialize(model: nn.Module):
    conv_init(model)
    bn_init(model)
    linear_init(model)
    logger.info("Initialization pass done")
    return model
