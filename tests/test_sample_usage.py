from sls_scheduler import sample_usage


def test_walkthrough_completes_job(capsys):
    sample_usage.main()

    output = capsys.readouterr().out
    assert "Changeover Ti-6Al-4V -> Inconel 718: 120 min" in output
    assert "Job A status: Completed" in output
