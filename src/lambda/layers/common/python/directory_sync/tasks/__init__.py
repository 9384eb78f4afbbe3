"""Step Functions task behaviors backing the workflow Lambdas."""
