# train/data.py
import os

import torchvision
from torch.utils.data import DataLoader
from torchvision.transforms import transforms

CIFAR_STATS = {
    'cifar10': ((0.4914, 0.4822, 0.4465), (0.2470, 0.2435, 0.2616)),
    'cifar100': ((0.5071, 0.4865, 0.4409), (0.2673, 0.2564, 0.2762)),
}
IMAGENET_STATS = ((0.485, 0.456, 0.406), (0.229, 0.224, 0.225))


def _cifar_datasets(opt):
    mean, std = CIFAR_STATS[opt.dataset]
    train_transform = transforms.Compose([
        transforms.RandomCrop(32, padding=4),
        transforms.RandomHorizontalFlip(),
        transforms.ToTensor(),
        transforms.Normalize(mean, std),
    ])
    val_transform = transforms.Compose([
        transforms.ToTensor(),
        transforms.Normalize(mean, std),
    ])
    cls = torchvision.datasets.CIFAR10 if opt.dataset == 'cifar10' else torchvision.datasets.CIFAR100
    train = cls(root=opt.data, train=True, download=True, transform=train_transform)
    val = cls(root=opt.data, train=False, download=True, transform=val_transform)
    return train, val


def _imagenet_datasets(opt):
    mean, std = IMAGENET_STATS
    train_transform = transforms.Compose([
        transforms.RandomResizedCrop(224),
        transforms.RandomHorizontalFlip(),
        transforms.ToTensor(),
        transforms.Normalize(mean, std),
    ])
    val_transform = transforms.Compose([
        transforms.Resize(256),
        transforms.CenterCrop(224),
        transforms.ToTensor(),
        transforms.Normalize(mean, std),
    ])
    train = torchvision.datasets.ImageFolder(os.path.join(opt.data, 'train'), train_transform)
    val = torchvision.datasets.ImageFolder(os.path.join(opt.data, 'val'), val_transform)
    return train, val


def get_loaders(opt):
    """
    Build (train_loader, val_loader) for opt.dataset with torchvision datasets.
    """
    if opt.dataset in CIFAR_STATS:
        train, val = _cifar_datasets(opt)
    elif opt.dataset == 'imagenet':
        train, val = _imagenet_datasets(opt)
    else:
        raise ValueError(f"invalid dataset: {opt.dataset}")

    train_loader = DataLoader(train, batch_size=opt.batch_size, shuffle=True,
                              num_workers=opt.n_threads, pin_memory=True)
    val_loader = DataLoader(val, batch_size=opt.batch_size, shuffle=False,
                            num_workers=opt.n_threads, pin_memory=True)
    return train_loader, val_loader
