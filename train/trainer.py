# train/trainer.py (minimal)
import torch
from torch.optim import SGD
from tqdm import tqdm
from utils.logger import get_logger

logger = get_logger("trainer", logfile="trainer.log")


def compute_errors(output, target, topk=(1, 5)):
    """Top-k error rates (percent) of a batch."""
    maxk = min(max(topk), output.size(1))
    _, pred = output.topk(maxk, dim=1)
    correct = pred.eq(target.view(-1, 1).expand_as(pred))
    batch = target.size(0)
    errors = []
    for k in topk:
        k = min(k, maxk)
        hits = correct[:, :k].any(dim=1).float().sum().item()
        errors.append((1.0 - hits / batch) * 100.0)
    return errors


class Trainer:
    def __init__(self, model, criterion, opt, optim_state=None):
        self.model = model
        self.criterion = criterion
        self.opt = opt
        self.device = next(model.parameters()).device
        self.optimizer = SGD(model.parameters(), lr=opt.lr, momentum=opt.momentum,
                             weight_decay=opt.weight_decay, nesterov=opt.momentum > 0)
        if optim_state is not None:
            self.optimizer.load_state_dict(optim_state)

    def learning_rate(self, epoch):
        # step schedule: /10 every 30 epochs (imagenet) or at 50% and 75% of the run
        if self.opt.dataset == 'imagenet':
            decay = (epoch - 1) // 30
        else:
            n = max(self.opt.n_epochs, 1)
            decay = 2 if epoch > 0.75 * n else 1 if epoch > 0.5 * n else 0
        return self.opt.lr * (0.1 ** decay)

    def train(self, epoch, loader):
        lr = self.learning_rate(epoch)
        for group in self.optimizer.param_groups:
            group['lr'] = lr

        self.model.train()
        top1_sum = top5_sum = loss_sum = 0.0
        n = 0
        for x, y in tqdm(loader, desc=f"train {epoch}"):
            x, y = x.to(self.device), y.to(self.device)
            self.optimizer.zero_grad()
            out = self.model(x)
            loss = self.criterion(out, y)
            loss.backward()
            self.optimizer.step()

            top1, top5 = compute_errors(out.detach(), y)
            batch = y.size(0)
            top1_sum += top1 * batch
            top5_sum += top5 * batch
            loss_sum += loss.item() * batch
            n += batch

        n = max(n, 1)
        logger.info(" * Epoch %d train: top1 %.3f top5 %.3f loss %.4f lr %g",
                    epoch, top1_sum / n, top5_sum / n, loss_sum / n, lr)
        return top1_sum / n, top5_sum / n, loss_sum / n

    def test(self, epoch, loader):
        self.model.eval()
        top1_sum = top5_sum = 0.0
        n = 0
        with torch.no_grad():
            for x, y in loader:
                x, y = x.to(self.device), y.to(self.device)
                out = self.model(x)
                top1, top5 = compute_errors(out, y)
                batch = y.size(0)
                top1_sum += top1 * batch
                top5_sum += top5 * batch
                n += batch

        n = max(n, 1)
        logger.info(" * Epoch %d test: top1 %.3f top5 %.3f", epoch, top1_sum / n, top5_sum / n)
        return top1_sum / n, top5_sum / n
