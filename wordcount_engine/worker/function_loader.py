#!/usr/bin/env python3
"""
Dynamic Function Loader for MapReduce Job Functions
Loads a job module (file path or dotted module name) containing map, reduce,
and combiner functions
"""

import importlib
import importlib.util
import logging
import os
import sys
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JobFunctions:
    """The callables that make up a job"""
    map_function: Callable
    reduce_function: Callable
    combiner_function: Optional[Callable] = None


def normalize_output(key, result) -> Iterator[tuple]:
    """
    Turn whatever a reduce or combiner function returned into (key, value) pairs.

    Accepts None, a bare value (paired with the input key), a single
    (key, value) tuple, or an iterable of pairs. A 2-tuple whose elements
    are both 2-tuples, such as ((k1, v1), (k2, v2)), is read as two pairs.
    """
    if result is None:
        return iter(())
    if isinstance(result, tuple) and len(result) == 2:
        if all(isinstance(item, tuple) and len(item) == 2 for item in result):
            return iter(result)
        return iter((result,))
    if isinstance(result, (str, bytes, int, float)):
        return iter(((key, result),))
    try:
        return iter(result)
    except TypeError:
        # Not iterable - it's a single value
        return iter(((key, result),))


class FunctionLoader:
    """Dynamically loads job functions from a Python file or an importable module"""

    def __init__(self, job_file: str):
        """
        Initialize the function loader

        Args:
            job_file: Path to a Python file, or a dotted module name
        """
        self.job_file = job_file
        self.module = None

    def load_module(self):
        """
        Load the job module

        Returns:
            The loaded module object

        Raises:
            FileNotFoundError: If a path was given and the file doesn't exist
            ImportError: If a module name was given and cannot be imported
        """
        if self.job_file.endswith('.py') or os.sep in self.job_file:
            if not os.path.exists(self.job_file):
                raise FileNotFoundError(f"Job file not found: {self.job_file}")

            module_name = f"wordcount_job_{os.path.splitext(os.path.basename(self.job_file))[0]}"
            spec = importlib.util.spec_from_file_location(module_name, self.job_file)
            if spec is None or spec.loader is None:
                raise ImportError(f"Failed to load job file: {self.job_file}")
            module = importlib.util.module_from_spec(spec)
            sys.modules[module_name] = module
            spec.loader.exec_module(module)
        else:
            module = importlib.import_module(self.job_file)

        logger.debug(f"Loaded job module {module.__name__} from {self.job_file}")
        self.module = module
        return module

    def _get(self, name: str) -> Callable:
        if not self.module:
            self.load_module()

        func = getattr(self.module, name, None)
        if not callable(func):
            raise AttributeError(f"Job module must define '{name}'")
        return func

    def get_map_function(self) -> Callable:
        """
        Raises:
            AttributeError: If module doesn't define 'map_function'
        """
        return self._get('map_function')

    def get_reduce_function(self) -> Callable:
        """
        Raises:
            AttributeError: If module doesn't define 'reduce_function'
        """
        return self._get('reduce_function')

    def get_combiner_function(self) -> Optional[Callable]:
        """
        Get combiner function from loaded module

        Returns:
            The combiner_function callable, or reduce_function as default, or None
        """
        if not self.module:
            self.load_module()

        # First try to get explicit combiner_function
        if callable(getattr(self.module, 'combiner_function', None)):
            return self.module.combiner_function
        # Default combiner is reduce function
        if callable(getattr(self.module, 'reduce_function', None)):
            return self.module.reduce_function
        return None

    def load(self) -> JobFunctions:
        """Load all job functions at once"""
        return JobFunctions(
            map_function=self.get_map_function(),
            reduce_function=self.get_reduce_function(),
            combiner_function=self.get_combiner_function()
        )
