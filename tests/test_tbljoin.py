import pandas as pd
import pytest

import tbljoin


@pytest.fixture
def pair(tmp_path):
    left = tmp_path / "left.tsv"
    right = tmp_path / "right.tsv"
    left.write_text("id\tname\n1\ta\n2\tb\n3\tc\n")
    right.write_text("id\tscore\n2\t20\n3\t30\n4\t40\n")
    return str(left), str(right)


def test_inner_join_on_common_column(pair, capsys):
    tbljoin.main(list(pair))
    assert capsys.readouterr().out == "id\tname\tscore\n2\tb\t20\n3\tc\t30\n"


def test_left_join_fills_missing(pair, capsys):
    tbljoin.main(["--how", "left", "--null", "NA", *pair])
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "id\tname\tscore"
    assert "1\ta\tNA" in lines
    assert len(lines) == 4


def test_outer_join_keeps_both_sides(pair, capsys):
    tbljoin.main(["--how", "outer", *pair])
    lines = set(capsys.readouterr().out.splitlines())
    assert lines == {"id\tname\tscore", "1\ta\t", "2\tb\t20", "3\tc\t30", "4\t\t40"}


def test_output_delimiter(pair, capsys):
    tbljoin.main(["-o", ",", *pair])
    assert capsys.readouterr().out.splitlines()[0] == "id,name,score"


def test_common_keys_keep_left_order():
    assert tbljoin.common_keys(["b", "a", "x"], ["a", "b", "y"]) == ["b", "a"]


def test_resolve_keys_errors():
    with pytest.raises(ValueError, match="share no column"):
        tbljoin.resolve_keys(None, ["a"], ["b"])
    with pytest.raises(ValueError, match="right file"):
        tbljoin.resolve_keys("a", ["a"], ["b"])


def test_multi_key_join_with_overlapping_columns():
    left = pd.DataFrame({"k1": ["1", "1"], "k2": ["a", "b"], "v": ["x", "y"]})
    right = pd.DataFrame({"k1": ["1"], "k2": ["b"], "v": ["z"]})
    merged = tbljoin.join_frames(left, right, ["k1", "k2"])
    assert list(merged.columns) == ["k1", "k2", "v_x", "v_y"]
    assert merged.values.tolist() == [["1", "b", "y", "z"]]


def test_natural_sort_by_key():
    left = pd.DataFrame({"id": ["10", "9", "2"], "v": ["a", "b", "c"]})
    right = pd.DataFrame({"id": ["2", "9", "10"], "w": ["x", "y", "z"]})
    merged = tbljoin.join_frames(left, right, ["id"], sort=True)
    assert merged["id"].tolist() == ["2", "9", "10"]


def test_no_shared_columns_is_an_error(tmp_path, capsys):
    left = tmp_path / "l.csv"
    right = tmp_path / "r.csv"
    left.write_text("a,b\n1,2\n")
    right.write_text("c,d\n1,2\n")
    with pytest.raises(SystemExit) as exc:
        tbljoin.main([str(left), str(right)])
    assert exc.value.code == 1
    assert "-k/--keys" in capsys.readouterr().err


def test_print_cmd(pair, capsys):
    tbljoin.main(["--print-cmd", "--how", "left", *pair])
    out = capsys.readouterr().out
    assert out.startswith("LC_ALL=C join --header")
    assert "-1 1 -2 1 -a 1" in out
    assert out.count("sort -t") == 2


def test_print_cmd_single_key_only(tmp_path):
    left = tmp_path / "l.csv"
    right = tmp_path / "r.csv"
    left.write_text("a,b,c\n")
    right.write_text("a,b,d\n")
    with pytest.raises(ValueError, match="exactly one key"):
        tbljoin.run(tbljoin._setup_arg_parser().parse_args(["--print-cmd", str(left), str(right)]))


def test_output_quotes_values_containing_the_delimiter(tmp_path, capsys):
    left = tmp_path / "l.tsv"
    right = tmp_path / "r.tsv"
    left.write_text("id\tname\n1\tSmith, J\n")
    right.write_text("id\tcity\n1\tBoston\n")
    tbljoin.main(["-o", ",", str(left), str(right)])
    assert capsys.readouterr().out == 'id,name,city\n1,"Smith, J",Boston\n'


def test_quoted_csv_input(tmp_path, capsys):
    left = tmp_path / "l.csv"
    right = tmp_path / "r.csv"
    left.write_text('id,name\n1,"Smith, J"\n')
    right.write_text("id,city\n1,Boston\n")
    tbljoin.main([str(left), str(right)])
    assert capsys.readouterr().out == 'id,name,city\n1,"Smith, J",Boston\n'
