import os
import sys

import pytest

# Add project root and scripts/ to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.append(project_root)
sys.path.append(os.path.join(project_root, "scripts"))

from make_synthetic_dataset import make_texture, translation_warp, write_dataset
from common.types import Frame
from repeatability.dataset import WarpSet, prune_warp


@pytest.fixture
def synthetic_dataset(tmp_path):
    """Three 48x40 translated frames with exact warps, written in the on-disk format."""
    out = tmp_path / "dataset"
    nums = write_dataset(out, frames=3, size=(48, 40), step=(2, 1), seed=3)
    return str(out), nums


@pytest.fixture
def textured_frames():
    """Two in-memory frames shifted by (2, 1) plus pruned warps between them."""
    H, W = 32, 40
    base = make_texture(W + 4, H + 4, seed=11, cell=3, blur_sigma=0.0)
    f0 = Frame(index=0, image=base[0:H, 0:W].copy())
    f1 = Frame(index=1, image=base[1:H + 1, 2:W + 2].copy())
    warps = WarpSet(
        size=(H, W),
        pruned=True,
        fields={
            (0, 1): prune_warp(translation_warp((H, W), (-2, -1))),
            (1, 0): prune_warp(translation_warp((H, W), (2, 1))),
        },
    )
    return [f0, f1], warps

