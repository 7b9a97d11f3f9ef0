from dinepos import create_app

app = create_app()
