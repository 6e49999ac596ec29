from rollup_harness.main import cli

cli()
