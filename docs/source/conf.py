# Configuration file for the Sphinx documentation builder.
#
# https://www.sphinx-doc.org/en/master/usage/configuration.html

import os
import sys
import importlib.metadata

sys.path.insert(0, os.path.abspath("../.."))


# -- Project information -----------------------------------------------------

project = "ctmrgkit"
copyright = "2024, the ctmrgkit developers"
author = "the ctmrgkit developers"

release = importlib.metadata.version("ctmrgkit")

from ctmrgkit import git_tag

# Untagged builds show the commit next to the version
if git_tag is None:
    from ctmrgkit import git_commit

    if git_commit is not None:
        release = f"{release}+{git_commit[:8]}"

version = ".".join(release.split(".")[:2])


# -- General configuration ---------------------------------------------------

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.autosummary",
    "sphinx.ext.viewcode",
    "sphinx.ext.mathjax",
    "sphinx.ext.napoleon",
    "sphinx.ext.intersphinx",
    "sphinx_autodoc_defaultargs",
]

autosummary_generate = True

napoleon_include_private_with_doc = True
napoleon_preprocess_types = False

autodoc_member_order = "bysource"
autodoc_type_aliases = {
    "T_CTMRGEnv": "CTMRGEnv",
    "T_InfiniteSquareNetwork": "InfiniteSquareNetwork",
    "T_InfinitePEPS": "InfinitePEPS",
    "T_InfinitePEPO": "InfinitePEPO",
    "jax._src.numpy.lax_numpy.ndarray": "jax.numpy.ndarray",
}

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "jax": ("https://jax.readthedocs.io/en/latest/", None),
    "numpy": ("https://numpy.org/doc/stable/", None),
}

templates_path = ["_templates"]

exclude_patterns = []


# -- Options for HTML output -------------------------------------------------

html_theme = "sphinx_rtd_theme"

html_static_path = ["_static"]

rst_prolog = """
.. |default| raw:: html

    <div class="default-value-section"> <span class="default-value-label">Default:</span>"""
