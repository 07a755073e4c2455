import os
import sys
sys.path.insert(0, os.path.abspath('..'))

project = 'tpxcoin'
extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.mathjax',
]

autodoc_mock_imports = ['pyarrow']
exclude_patterns = ['_build']
html_theme = 'alabaster'
