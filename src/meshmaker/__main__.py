from meshmaker.cli import app

app(prog_name="meshmaker")
