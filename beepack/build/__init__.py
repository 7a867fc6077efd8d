"""Pipeline components: compiler, packager, distributor, image synthesizer."""
