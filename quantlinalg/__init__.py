# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
quantlinalg
===========

Dense linear-algebra kernels for quantitative indicator research, and
the statistics and multi-market features built on them.

Public API
~~~~~~~~~~
- Decompositions
    - `lu_decompose`, `lu_solve`, `invert`
    - `eigen_symmetric`
    - `SingularValueDecomp`
- Matrix utilities
    - `det`, `solve`, `least_squares_svd`, `permutation_sign`
- Statistics
    - `distributions`, `significance` and `descriptive` sub-modules
      (`descriptive.partition` bins a predictor for the table tests)
- Features
    - `mahalanobis`, `absorption_ratio`, `absorption_shift`,
      `coherence`, `delta_coherence`
    - `Purify`, `purify_series`, `legendre_2`

Everything else lives in sub-modules and is **not** considered part of the
stable interface.

Example
-------
>>> import numpy as np, quantlinalg as ql
>>> A = np.array([[2.0, -1.0, 0.0], [-1.0, 2.0, -1.0], [0.0, -1.0, 2.0]])
>>> inv, d = ql.invert(A)
>>> np.allclose(A @ inv, np.eye(3)), round(d, 12)
(True, 4.0)
"""

from importlib.metadata import version as _pkg_version

from . import descriptive, distributions, significance
from .eigen import EigenDecomposition, EigenWorkspace, eigen_symmetric
from .elimination import LUDecomposition, LUWorkspace, invert, lu_decompose, lu_solve
from .errors import ConstructionError, LinAlgError, SingularMatrixError
from .features import (
    absorption_ratio,
    absorption_shift,
    coherence,
    delta_coherence,
    mahalanobis,
)
from .matrix_functions import det, least_squares_svd, permutation_sign, solve
from .purify import Purify, legendre_2, purify_series
from .svd import SingularValueDecomp

__all__ = [
    "lu_decompose",
    "lu_solve",
    "invert",
    "LUDecomposition",
    "LUWorkspace",
    "eigen_symmetric",
    "EigenDecomposition",
    "EigenWorkspace",
    "SingularValueDecomp",
    "det",
    "solve",
    "least_squares_svd",
    "permutation_sign",
    "LinAlgError",
    "SingularMatrixError",
    "ConstructionError",
    "mahalanobis",
    "absorption_ratio",
    "absorption_shift",
    "coherence",
    "delta_coherence",
    "Purify",
    "purify_series",
    "legendre_2",
    "descriptive",
    "distributions",
    "significance",
]

# ---------------------------------------------------------------------
# Version string (helps "pip show quantlinalg", Sphinx, etc.)
# ---------------------------------------------------------------------
try:  # installed via pip / build backend
    __version__ = _pkg_version(__name__)
except Exception:  # running from a checkout
    __version__ = "0.0.0.dev0"

# ---------------------------------------------------------------------
# Library code never configures logging; applications opt in.
# ---------------------------------------------------------------------
import logging as _logging

_logging.getLogger(__name__).addHandler(_logging.NullHandler())
