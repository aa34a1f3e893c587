"""Contains the FloatArray type."""

from typing import Union

import numpy as np
import numpy.typing as npt

FloatArray = npt.NDArray[Union[np.float32, np.float64]]
