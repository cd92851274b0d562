# Copyright (C) 2025 Brantleigh Bunting
# SPDX-License-Identifier: BUSL-1.1
#
# Use of this software is governed by the Business Source License
# included in the LICENSE file and at <https://mariadb.com/bsl11>

"""
Exceptions raised by the numerical core.

Accuracy loss in LU decomposition and non-convergence of the QL/QR
iterations are not exceptions; they are reported on the result objects.
"""


class LinAlgError(ValueError):
    """Base class for quantlinalg numerical failures."""


class SingularMatrixError(LinAlgError):
    """The matrix has no inverse or LU decomposition at working precision."""

    def __init__(self, message: str = "matrix is singular", determinant: float = 0.0):
        super().__init__(message)
        self.determinant = determinant


class ConstructionError(LinAlgError):
    """A solver could not be built (illegal shape or allocation failure)."""
