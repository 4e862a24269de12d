import os
import sys

# Put project root on sys.path so autoapi can import the package if needed
sys.path.insert(0, os.path.abspath("../.."))

project = "empcal"
author = "empcal developers"

extensions = [
    "autoapi.extension",
    "sphinx.ext.doctest",
    "sphinx.ext.napoleon",
    "sphinx.ext.mathjax",
    "myst_nb",
    "sphinx_copybutton",
]
templates_path = []
exclude_patterns = []

# Notebooks that run the MCMC fit are slow; render stored outputs only.
nb_execution_mode = "off"

html_theme = "alabaster"

myst_enable_extensions = [
    "deflist",
    "dollarmath",
    "colon_fence",
]

master_doc = "index"

# ---------------------------------------------------------------------------
# sphinx-autoapi: generate API reference for the `empcal` package
# ---------------------------------------------------------------------------
autoapi_type = "python"
autoapi_dirs = ["../../empcal"]

autoapi_ignore = [
    "**/tests/**",
    "**/__pycache__/**",
]

autodoc_typehints = "description"

# Model docstrings use both Google (Args/Returns) and numpy (Parameters) sections.
napoleon_google_docstring = True
napoleon_numpy_docstring = True

autoapi_options = [
    "members",
    "undoc-members",
    "show-inheritance",
    "show-module-summary",
]

autoapi_python_class_content = "both"
