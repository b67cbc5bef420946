from tutor_assist.demo import main


def test_demo_runs_through(capsys):
    stats = main(interactive=False)
    out = capsys.readouterr().out
    assert "DEMO COMPLETE" in out
    assert stats["total_dismissed"] >= 1
    assert stats["by_reason"]["manual"] == stats["total_dismissed"]
