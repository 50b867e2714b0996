from codebook import create_app

app = create_app()
