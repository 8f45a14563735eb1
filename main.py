# main.py
import random
import sys

import numpy as np
import torch

from architectures.model_setup import setup
from profiling.counters import count_ops, count_parameters, sample_input
from train import checkpoints
from train.data import get_loaders
from train.trainer import Trainer
from utils import logger as logging_utils
from utils.opts import parse

logger = logging_utils.get_logger("main", logfile="main.log")


def seed_everything(seed):
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)
    torch.cuda.manual_seed_all(seed)


def report(model, opt):
    device = next(model.parameters()).device
    total, _ = count_ops(model, sample_input(opt.dataset, device=device))
    print('    Total: %.2f GFLOPS' % (total / 10 ** 9))
    params = count_parameters(model)
    print('    Parameters: %.2fM' % (params / 1000000))
    return total, params


def run_training(model, criterion, opt, checkpoint, optim_state):
    train_loader, val_loader = get_loaders(opt)
    trainer = Trainer(model, criterion, opt, optim_state)
    start_epoch = checkpoint['epoch'] + 1 if checkpoint else 1

    best_top1 = float('inf')
    best_top5 = float('inf')
    for epoch in range(start_epoch, opt.n_epochs + 1):
        trainer.train(epoch, train_loader)
        top1, top5 = trainer.test(epoch, val_loader)

        is_best = top1 < best_top1
        if is_best:
            best_top1, best_top5 = top1, top5
        checkpoints.save(epoch, model, trainer.optimizer, is_best, opt)

    logger.info(" * Finished top1: %.3f  top5: %.3f", best_top1, best_top5)


def main(args=None):
    try:
        opt = parse(args)
    except SystemExit as e:
        if e.code in (0, None):
            raise  # --help
        logger.error("Invalid options: %s", args if args is not None else sys.argv[1:])
        return 1
    except ValueError as e:
        logger.error("Invalid options: %s", e)
        return 1
    logging_utils.configure(log_dir=opt.log_dir, level=opt.log_level)

    torch.set_num_threads(1)
    seed_everything(opt.manual_seed)

    # Load previous checkpoint, if it exists
    checkpoint, optim_state = checkpoints.latest(opt)

    try:
        model, criterion = setup(opt, checkpoint)
    except ValueError as e:
        logger.error("Cannot build model: %s", e)
        return 1

    report(model, opt)

    if opt.n_epochs > 0:
        run_training(model, criterion, opt, checkpoint, optim_state)
    return 0


if __name__ == "__main__":
    sys.exit(main())
