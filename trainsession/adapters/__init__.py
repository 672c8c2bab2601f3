"""Reference collaborators: a numpy minibatch source and a torch trainer."""
