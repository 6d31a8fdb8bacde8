"""Tests for the cell code policy."""
import pytest

from labplay.notebook.safety import PolicyViolation, check_code, enforce, find_violation


@pytest.mark.parametrize(
    "code, message",
    [
        ("pip install xgboost", "pip install is not allowed."),
        ("!pip install lightgbm", "pip install is not allowed."),
        ("%pip3 install catboost", "pip install is not allowed."),
        ("PIP INSTALL requests", "pip install is not allowed."),
        ("conda install numpy", "System package installation is not allowed."),
        ("apt-get install -y curl", "System package installation is not allowed."),
        ("import torch", "Heavy DL libraries are not available."),
        ("from tensorflow import keras", "Heavy DL libraries are not available."),
        ("mod = __import__('os')", "__import__ is not allowed."),
        ("import os\nos.system('ls')", "os.system() is not allowed."),
        ("import subprocess", "subprocess is not allowed."),
    ],
)
def test_blocked_code(code, message):
    assert check_code(code) == message


def test_first_matching_rule_wins():
    """pip rule is checked before the heavy-library rule."""
    assert check_code("pip install torch\nimport torch") == "pip install is not allowed."
    assert check_code("import torch\nimport subprocess") == "Heavy DL libraries are not available."


def test_ordinary_analysis_code_passes():
    code = "import pandas as pd\ndf = pd.read_csv('sales.csv')\nprint(df.describe())"
    assert check_code(code) is None
    assert find_violation("") is None


def test_enforce_raises_with_rule():
    with pytest.raises(PolicyViolation) as exc:
        enforce("import keras")
    assert exc.value.message == "Heavy DL libraries are not available."
    assert exc.value.rule.matches("import keras")
    enforce("x = 1")
