from salvo.cli import app

app(prog_name="salvo")
