from ardactl.cli import app

app(prog_name="ardactl")
