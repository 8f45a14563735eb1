# train/checkpoints.py
import os

import torch
import torch.nn as nn
from utils.logger import get_logger

logger = get_logger("checkpoints", logfile="checkpoints.log")


def latest(opt):
    """
    Load the checkpoint index from `opt.resume`.
    Returns (checkpoint, optim_state), or (None, None) when there is nothing to resume.
    """
    if not opt.resume:
        return None, None

    latest_path = os.path.join(opt.resume, 'latest.pth')
    if not os.path.exists(latest_path):
        logger.info("No checkpoint at %s, starting fresh", latest_path)
        return None, None

    logger.info("=> Loading checkpoint %s", latest_path)
    checkpoint = torch.load(latest_path, map_location='cpu')
    optim_state = torch.load(checkpoint['optim_file'], map_location='cpu')
    return checkpoint, optim_state


def save(epoch, model, optimizer, is_best, opt):
    if isinstance(model, nn.DataParallel):
        model = model.module

    os.makedirs(opt.save, exist_ok=True)
    model_file = os.path.join(opt.save, f'model_{epoch}.pth')
    optim_file = os.path.join(opt.save, f'optimState_{epoch}.pth')

    torch.save(model.state_dict(), model_file)
    torch.save(optimizer.state_dict(), optim_file)
    torch.save({
        'epoch': epoch,
        'model_file': model_file,
        'optim_file': optim_file,
    }, os.path.join(opt.save, 'latest.pth'))
    logger.info("Saved checkpoint for epoch %d to %s", epoch, opt.save)

    if is_best:
        torch.save(model.state_dict(), os.path.join(opt.save, 'model_best.pth'))
        logger.info("New best model at epoch %d", epoch)
