import pytest

from ferrum.main import load_system_prompt, main, setup_tools
from ferrum.tools import FileReaderTool


def test_load_system_prompt_reads_whole_file(tmp_path):
    soul = tmp_path / "SOUL.md"
    soul.write_text("You are helpful.\nBe brief.\n", encoding="utf-8")
    assert load_system_prompt(soul) == "You are helpful.\nBe brief.\n"


def test_load_system_prompt_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_system_prompt(tmp_path / "absent.md")


def test_setup_tools_offers_file_reader():
    tools = setup_tools()
    assert list(tools) == ["read_file"]
    assert isinstance(tools["read_file"], FileReaderTool)


def test_main_exits_when_prompt_file_missing(tmp_path):
    log_dir = tmp_path / "logs"
    with pytest.raises(SystemExit) as info:
        main(["--soul", str(tmp_path / "SOUL.md"), "--log-dir", str(log_dir)])
    assert info.value.code == "SOUL.md not found"
    assert (log_dir / "ferrum.log").exists()